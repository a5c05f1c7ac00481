"""Identity Profile — source credentials and queries.

Three credentials about the same holder from three issuers:

  citizenship   permanent resident card (citizenship vocabulary)
  vaccination   vaccination certificate (vaccination vocabulary)
  degree        university degree (schema.org)

Contexts are inline term definitions layered over the bundled credentials
context, so the case study runs without network access.
"""

from __future__ import annotations

from credgraph.types import CREDENTIALS_V1

HOLDER = "did:example:holder-alice"

CITIZENSHIP_CONTEXT = {
    "citizenship": "https://w3id.org/citizenship#",
    "schema": "http://schema.org/",
    "PermanentResidentCard": "citizenship:PermanentResidentCard",
    "PermanentResident": "citizenship:PermanentResident",
    "Person": "schema:Person",
    "givenName": "citizenship:givenName",
    "familyName": "citizenship:familyName",
    "birthDate": "citizenship:birthDate",
    "birthCountry": "citizenship:birthCountry",
    "residentSince": "citizenship:residentSince",
    "lprCategory": "citizenship:lprCategory",
}

VACCINATION_CONTEXT = {
    "vaccination": "https://w3id.org/vaccination#",
    "VaccinationCertificate": "vaccination:VaccinationCertificate",
    "VaccinationEvent": "vaccination:VaccinationEvent",
    "recipient": {"@id": "vaccination:recipient", "@type": "@id"},
    "vaccine": "vaccination:vaccine",
    "occurrence": "vaccination:occurrence",
    "location": "vaccination:location",
    "lotNumber": "vaccination:lotNumber",
}

SCHEMA_CONTEXT = {"@vocab": "http://schema.org/"}


def citizenship_credential() -> dict:
    return {
        "@context": [CREDENTIALS_V1, CITIZENSHIP_CONTEXT],
        "id": "https://issuer.example.gov/credentials/prc-1234",
        "type": ["VerifiableCredential", "PermanentResidentCard"],
        "issuer": "did:example:immigration-office",
        "issuanceDate": "2020-01-01T00:00:00Z",
        "credentialSubject": {
            "id": HOLDER,
            "type": ["PermanentResident", "Person"],
            "givenName": "Alice",
            "familyName": "Smith",
            "birthDate": "1990-05-15",
            "birthCountry": "Bahamas",
            "residentSince": "2015-01-01",
            "lprCategory": "C09",
        },
    }


def vaccination_credential() -> dict:
    return {
        "@context": [CREDENTIALS_V1, VACCINATION_CONTEXT],
        "id": "https://health.example.org/credentials/vac-77",
        "type": ["VerifiableCredential", "VaccinationCertificate"],
        "issuer": "https://health.example.org",
        "issuanceDate": "2021-06-01T00:00:00Z",
        "expirationDate": "2030-01-01T00:00:00Z",
        "credentialSubject": {
            "id": "urn:vaccination-event:77",
            "type": "VaccinationEvent",
            "recipient": HOLDER,
            "vaccine": "COVID-19 mRNA",
            "occurrence": "2021-05-20",
            "location": "Springfield Clinic",
            "lotNumber": "LOT-4421",
        },
    }


def degree_credential() -> dict:
    return {
        "@context": [CREDENTIALS_V1, SCHEMA_CONTEXT],
        "id": "https://university.example.edu/credentials/3732",
        "type": ["VerifiableCredential", "UniversityDegreeCredential"],
        "issuer": {"id": "https://university.example.edu", "name": "Example University"},
        "issuanceDate": "2012-07-01T00:00:00Z",
        "credentialSubject": {
            "id": HOLDER,
            "name": "Alice Smith",
            "degree": {"type": "BachelorDegree", "name": "Bachelor of Science"},
        },
    }


def all_credentials() -> list[dict]:
    return [citizenship_credential(), vaccination_credential(), degree_credential()]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

ADULT_STATUS_CONSTRUCT = """PREFIX citizenship: <https://w3id.org/citizenship#>
PREFIX schema: <http://schema.org/>
PREFIX status: <https://example.org/status#>

CONSTRUCT {
  ?subject status:isAdult true ;
           schema:birthDate ?birthDate .
} WHERE {
  { ?subject citizenship:birthDate ?birthDate }
  UNION
  { ?subject schema:birthDate ?birthDate }
  FILTER(STR(?birthDate) <= "2007-01-01")
}"""

VACCINATION_SELECT = """PREFIX vaccination: <https://w3id.org/vaccination#>

SELECT ?recipient ?vaccine ?date WHERE {
  ?event vaccination:recipient ?recipient ;
         vaccination:vaccine ?vaccine .
  OPTIONAL { ?event vaccination:occurrence ?date }
}"""
