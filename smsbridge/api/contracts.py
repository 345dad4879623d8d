from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jsonschema


@dataclass(frozen=True)
class ApiContract:
    name: str
    version: str
    schema: dict[str, Any]


def _contract_envelope_v1() -> ApiContract:
    schema: dict[str, Any] = {
        "type": "object",
        "required": ["status"],
        "properties": {
            "status": {"type": "string", "minLength": 1},
            "sms": {"type": "array"},
        },
    }
    return ApiContract(name="ResponseEnvelope", version="1.0.0", schema=schema)


def _contract_sms_entry_v1() -> ApiContract:
    schema: dict[str, Any] = {
        "type": "object",
        "required": ["id", "date", "contact", "message"],
        "properties": {
            "id": {"type": ["string", "integer"]},
            "date": {
                "type": "string",
                "pattern": r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$",
            },
            "contact": {"type": ["string", "integer"]},
            "message": {"type": "string"},
        },
    }
    return ApiContract(name="SmsEntry", version="1.0.0", schema=schema)


@lru_cache(maxsize=8)
def get_contract(*, name: str, version: str) -> ApiContract:
    if name == "ResponseEnvelope" and version == "1.0.0":
        return _contract_envelope_v1()
    if name == "SmsEntry" and version == "1.0.0":
        return _contract_sms_entry_v1()
    raise ValueError(f"unsupported api contract: {name} v{version}")


@lru_cache(maxsize=8)
def _validator_cache(name: str, version: str) -> jsonschema.Draft202012Validator:
    contract = get_contract(name=name, version=version)
    return jsonschema.Draft202012Validator(contract.schema)


def contract_errors(*, name: str, version: str, obj: Any) -> list[str]:
    validator = _validator_cache(name, version)
    return sorted(e.message for e in validator.iter_errors(obj))
