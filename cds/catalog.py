"""
Service catalog for the CDS Hooks discovery endpoint.

The catalog is static and read-only: it is defined once at import time and
served as-is from GET /cds-services.
See http://cds-hooks.org/specification/1.0/#discovery
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ServiceDescriptor:
    id: str
    hook: str
    title: str
    description: str
    prefetch: Optional[Dict[str, str]] = None

    def to_dict(self):
        result = {
            'hook': self.hook,
            'id': self.id,
            'title': self.title,
            'description': self.description,
        }
        if self.prefetch:
            result['prefetch'] = dict(self.prefetch)
        return result


SERVICES = (
    ServiceDescriptor(
        id='patient-view-example',
        hook='patient-view',
        title='Example patient-view CDS Service',
        description='Displays the name and gender of the patient',
        # The EHR fills out the template and sends the Patient in the request
        prefetch={'requestedPatient': 'Patient/{{context.patientId}}'},
    ),
    ServiceDescriptor(
        id='patient-view-hypertension',
        hook='patient-view',
        title='Example patient-view CDS Service for hypertension',
        description='Returns a warning if the patient has hypertension',
    ),
    ServiceDescriptor(
        id='order-select-example',
        hook='order-select',
        title='Example order-select CDS Service',
        description='Suggests prescribing Aspirin 81 MG Oral Tablets',
    ),
)


def _index_services(services):
    index = {}
    for service in services:
        if service.id in index:
            raise ValueError(f'Duplicate CDS service id: {service.id}')
        index[service.id] = service
    return index


_SERVICES_BY_ID = _index_services(SERVICES)


def get_services() -> List[ServiceDescriptor]:
    """Return the catalog in declaration order."""
    return list(SERVICES)


def get_service(service_id: str) -> Optional[ServiceDescriptor]:
    return _SERVICES_BY_ID.get(service_id)
