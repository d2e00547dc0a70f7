"""List owner addresses the service reports as linked."""

from __future__ import annotations

import sys
from typing import TextIO

from workflow_cli.config import chain_name_for_selector
from workflow_cli.linking.service import LinkedOwner, LinkingService


def _chain_label(selector: str) -> str:
    return chain_name_for_selector(int(selector)) if selector.isdigit() else selector


def list_keys(service: LinkingService, *, out: TextIO | None = None) -> list[LinkedOwner]:
    out = out or sys.stdout
    owners = service.list_linked_owners()
    if not owners:
        print("No linked owners found", file=out)
        return owners

    print("Linked owners:", file=out)
    for owner in owners:
        print(f"  {owner.address}", file=out)
        if owner.label:
            print(f"    Label:        {owner.label}", file=out)
        print(f"    Environment:  {owner.environment}", file=out)
        print(f"    Verification: {owner.verification_status}", file=out)
        if owner.verified_at:
            print(f"    Verified at:  {owner.verified_at}", file=out)
        print(f"    Chain:        {_chain_label(owner.chain_selector)}", file=out)
        print(f"    Registry:     {owner.contract_address}", file=out)
        print(f"    Process:      {owner.request_process}", file=out)
    return owners
