from marshmallow import Schema, fields, validates_schema, ValidationError, EXCLUDE


class FhirAuthorizationSchema(Schema):
    """Schema for the OAuth access details the EHR shares for its FHIR server."""

    class Meta:
        unknown = EXCLUDE

    access_token = fields.String(required=True)
    token_type = fields.String(required=False, allow_none=True)
    expires_in = fields.Integer(required=False, allow_none=True)
    scope = fields.String(required=False, allow_none=True)
    subject = fields.String(required=False, allow_none=True)


class HookRequestSchema(Schema):
    """Schema for validating the body of a CDS service call."""

    class Meta:
        # Ignore unknown fields instead of raising errors
        unknown = EXCLUDE

    hook = fields.String(required=False, allow_none=True)
    hookInstance = fields.String(required=False, allow_none=True)
    # Local FHIR servers (http://localhost:8080/fhir) have no TLD
    fhirServer = fields.URL(required=False, allow_none=True, require_tld=False)
    fhirAuthorization = fields.Nested(FhirAuthorizationSchema, required=False, allow_none=True)
    context = fields.Dict(keys=fields.String(), required=True,
                          error_messages={'required': 'context is required'})
    prefetch = fields.Dict(keys=fields.String(), required=False, allow_none=True)

    @validates_schema
    def validate_patient_id(self, data, **kwargs):
        """patientId, when sent, must be a plain string."""
        patient_id = data.get('context', {}).get('patientId')
        if patient_id is not None and not isinstance(patient_id, str):
            raise ValidationError('context.patientId must be a string', field_name='context')
