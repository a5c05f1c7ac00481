"""Identity Profile — end-to-end credential graph demonstration.

Walks the whole pipeline over three credentials about one holder:

  1. Materialize     credentials -> one default-graph statement set
  2. SELECT derive   vaccination facts wrapped as one derived credential
  3. CONSTRUCT       adult-status template previewed as a SELECT, rows
                     picked, statements bound
  4. Derive          one derived credential per ``?subject``
  5. Round trip      derived credentials are fed back in as sources

Run with ``python -m case_studies.identity_profile.run`` from the
repository root.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

import json

from credgraph.construct import construct_from_selection, extract_select
from credgraph.derivation import (
    derive_credential,
    derive_credentials_from_construct,
    validity_period,
)
from credgraph.display import format_for_display
from credgraph.materialize import materialize
from credgraph.query import binding_to_json, execute_query
from credgraph.serialize import statements_to_turtle
from credgraph.types import DerivationTemplate
from credgraph.validation import check_conformance

from .credentials import ADULT_STATUS_CONSTRUCT, VACCINATION_SELECT, all_credentials


def print_header(title: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")


def print_step(number: int, name: str) -> None:
    print(f"\n{'─' * 60}")
    print(f"  STEP {number}: {name}")
    print(f"{'─' * 60}")


def main() -> None:
    print_header("Identity Profile: Credential Graph")

    credentials = all_credentials()
    for credential in credentials:
        print(format_for_display(credential).summary())

    print_step(1, "Materialize")
    materialization = materialize(credentials)
    print(materialization.summary())
    print(check_conformance(credentials).summary())

    print_step(2, "SELECT derivation")
    vaccination = derive_credential(
        VACCINATION_SELECT,
        credentials,
        DerivationTemplate(
            types=("VaccinationSummaryCredential",),
            name="Vaccination summary",
        ),
    )
    print(json.dumps(vaccination.to_dict(), indent=2))

    print_step(3, "CONSTRUCT preview and selection")
    extracted = extract_select(ADULT_STATUS_CONSTRUCT)
    print(extracted.select_text)
    preview = execute_query(ADULT_STATUS_CONSTRUCT, credentials)
    for index, row in enumerate(preview):
        print(f"  [{index}] {json.dumps(binding_to_json(row))}")
    selected = preview[:1]
    statements = construct_from_selection(ADULT_STATUS_CONSTRUCT, selected, credentials)
    print(statements_to_turtle(statements))

    print_step(4, "Derive per subject")
    period = validity_period(credentials)
    print(f"  Validity: {period.valid_from} .. {period.valid_until}")
    derived = derive_credentials_from_construct(
        statements,
        selected,
        credentials,
        DerivationTemplate(types=("AdultStatusCredential",), name="Adult status"),
    )
    for credential in derived:
        print(format_for_display(credential).summary())
        print(credential.subject["rdfData"])

    print_step(5, "Derived credentials as sources")
    again = materialize(derived + [vaccination])
    print(again.summary())

    print(f"\n{'=' * 60}")
    print("  Identity Profile Complete")
    print(f"{'=' * 60}")


if __name__ == "__main__":
    main()
