"""
CRM Pulse Engine Configuration
================================

Typed configuration for the analytics engine. Every heuristic the engine
relies on (field-name spellings, keyword lists, the area gazetteer, the
subject-line phone pattern) lives here rather than in the analyzers.

Resolution order in ``load_config``:
    defaults -> JSON file (top level or under "dashboard") -> environment -> overrides

Keys may be given in camelCase (``lookbackDays``) or snake_case
(``lookback_days``).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from analytics.lib.errors import ConfigError

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CATEGORY_FIELDS = [
    "I_am_looking_for",
    "Service_Category_n",
    "Lead_Source",
    "Whatsapp_Category_Service",
    "sub_service_category",
    "Category",
    "Lead_Type",
    "Product",
    "Service",
]

DEFAULT_OWNER_EXCLUSIONS = [
    "Pardeep Kumar",
    "Vineeth Wankhade",
    "Kedar dharmarajan",
]

# Bengaluru localities seen in deal addresses. Matching sorts these
# longest-first; names of equal length keep their listing order.
DEFAULT_KNOWN_AREAS = [
    "Ramagondanahalli", "Basaveshwaranagar", "Somasundarapalya", "CV Raman Nagar",
    "Ramamurthy Nagar", "Kumaraswamy Layout", "Rajarajeshwari Nagar",
    "Kadubeesanahalli", "Vidyaranyapura", "Old Airport Road", "Outer Ring Road",
    "Kanakapura Road", "Sarjapura Road", "Sarjapur Road", "Old Madras Road",
    "Electronic City", "Sahakara Nagar", "Kasavanahalli", "Doddanekundi",
    "Bommanahalli", "Bannerghatta", "Banashankari", "Basavanagudi", "Murugeshpalya",
    "Kaggadasapura", "Dommasandra", "Kundalahalli", "Thanisandra", "Devanahalli",
    "Brookefield", "Bellary Road", "Magadi Road", "Tumkur Road", "Mysore Road",
    "Hosur Road", "Hosa Road", "Haralur Road", "Kudlu Gate", "Silk Board",
    "Marathahalli", "Mahadevapura", "Whitefield", "HSR Layout", "BTM Layout",
    "Indiranagar", "Koramangala", "Bellandur", "Yelahanka", "Jayanagar",
    "JP Nagar", "RT Nagar", "RR Nagar", "Rajajinagar", "Malleshwaram",
    "Vijayanagar", "Yeshwanthpur", "Uttarahalli", "Nagarbhavi",
    "Puttenahalli", "Kanakapura", "Chandapura", "Bommasandra",
    "Carmelaram", "Choodasandra", "Immadihalli", "Seegehalli",
    "HAL Layout", "Horamavu", "Sarjapur", "Haralur", "Kadugodi",
    "Panathur", "Hebbal", "Varthur", "Hennur", "Bagalur",
    "Hoskote", "Attibele", "Anekal", "Mandur", "Medahalli", "Virgonagar",
    "Budigere", "Nagavara", "Manyata", "Gunjur", "Peenya",
    "Kengeri", "Dasarahalli", "Madiwala", "Gottigere", "Hulimavu",
    "Arekere", "Ambalipura", "Kogilu", "Jakkur", "Iblur", "Agara",
    "Domlur", "KR Puram", "Hoodi", "Kudlu", "Begur", "ITPL",
]

DEFAULT_SUBJECT_PHONE_PATTERN = r"(\+?\d[\d\s+-]{7,})"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class NcSlaHours(_ConfigModel):
    """Hours a lead may sit at a stage before it counts as overdue."""
    nc1_to_nc2: float = Field(4, ge=0)
    nc2_to_nc3: float = Field(24, ge=0)


class FieldAliases(_ConfigModel):
    """Candidate CRM field names, tried in order by ``first_present``."""
    lead_id: List[str] = ["id", "Id"]
    lead_phone: List[str] = ["Phone", "Mobile"]
    lead_first_name: List[str] = ["First_Name"]
    lead_last_name: List[str] = ["Last_Name", "Full_Name"]
    lead_status: List[str] = ["Lead_Status", "Status"]
    lead_sub_status: List[str] = ["Sub_Lead_Status", "Lead_Sub_Status"]
    lead_call_count: List[str] = ["Call_Count", "Number_of_Calls", "Calls"]
    lead_last_call: List[str] = ["Last_Call_Time", "Last_Call", "Last_Activity_Time"]
    lead_call_duration: List[str] = ["Call_Duration", "Total_Call_Duration", "Last_Call_Duration"]
    created_time: List[str] = ["Created_Time"]
    modified_time: List[str] = ["Modified_Time"]
    owner: List[str] = ["Owner"]
    call_duration: List[str] = [
        "Call_Duration_in_seconds", "Call_Duration", "Duration_in_seconds", "Duration",
    ]
    call_status: List[str] = ["Call_Status"]
    call_type: List[str] = ["Call_Type"]
    call_started: List[str] = ["Call_Start_Time", "Created_Time", "Modified_Time"]
    call_phone: List[str] = ["Dialled_Number", "Caller_ID", "Phone", "Mobile"]
    call_subject: List[str] = ["Subject"]
    call_lead_ref: List[str] = ["What_Id", "Who_Id"]
    deal_original_created: List[str] = ["Original_Created_Time_1", "Original_Created_Time"]
    deal_status: List[str] = ["Stage", "Status"]
    deal_street: List[str] = ["Street"]
    deal_phone: List[str] = ["Phone", "Mobile", "Contact_Phone"]
    deal_name: List[str] = ["Contact_Name", "Deal_Name", "Account_Name"]
    task_status: List[str] = ["Status", "Task_Status"]


class KeywordLists(_ConfigModel):
    """Substring keyword lists used by the text classifiers (lower-case)."""
    lead_converted: List[str] = ["converted", "won", "deal"]
    outcome_converted: List[str] = [
        "nc2", "nc3", "enrolled", "won", "customer", "call back later",
    ]
    outcome_rejected: List[str] = [
        "rejected", "wrong number", "duplicate", "price is high", "cancelled",
        "slot not available", "looking for job", "just enquiring",
    ]
    task_completed: List[str] = ["complete", "closed", "done"]
    rejection_marker: List[str] = ["reject"]
    price_objection: List[str] = ["price"]


class EngineConfig(_ConfigModel):
    """All options recognised by the analytics engine."""
    lookback_days: int = Field(7, ge=0)
    overdue_minutes: int = Field(30, ge=0)
    nc_sla_hours: NcSlaHours = Field(default_factory=NcSlaHours)
    category_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORY_FIELDS))
    owner_exclusion_list: List[str] = Field(default_factory=lambda: list(DEFAULT_OWNER_EXCLUSIONS))
    reference_timezone: str = "Asia/Kolkata"
    min_calls_for_ideal_hour: int = Field(20, ge=0)
    top_booking_areas: int = Field(5, ge=0)
    latest_leads_cap: int = Field(200, ge=0)
    overdue_followups_cap: int = Field(25, ge=0)
    call_lookback_days: int = Field(0, ge=0)
    known_areas: List[str] = Field(default_factory=lambda: list(DEFAULT_KNOWN_AREAS))
    subject_phone_pattern: str = DEFAULT_SUBJECT_PHONE_PATTERN
    fields: FieldAliases = Field(default_factory=FieldAliases)
    keywords: KeywordLists = Field(default_factory=KeywordLists)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _split_list(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _env_overrides() -> Dict[str, Any]:
    """Collect configuration values from environment variables."""
    env: Dict[str, Any] = {}
    scalar_vars = {
        "LOOKBACK_DAYS": "lookback_days",
        "OVERDUE_MINUTES": "overdue_minutes",
        "REFERENCE_TZ": "reference_timezone",
        "MIN_CALLS_FOR_IDEAL_HOUR": "min_calls_for_ideal_hour",
        "CALL_LOOKBACK_DAYS": "call_lookback_days",
    }
    for var, key in scalar_vars.items():
        value = os.getenv(var)
        if value:
            env[key] = value

    sla: Dict[str, Any] = {}
    if os.getenv("NC1_TO_NC2_SLA_HOURS"):
        sla["nc1_to_nc2"] = os.getenv("NC1_TO_NC2_SLA_HOURS")
    if os.getenv("NC2_TO_NC3_SLA_HOURS"):
        sla["nc2_to_nc3"] = os.getenv("NC2_TO_NC3_SLA_HOURS")
    if sla:
        env["nc_sla_hours"] = sla

    if os.getenv("CATEGORY_FIELDS"):
        env["category_fields"] = _split_list(os.getenv("CATEGORY_FIELDS"))
    if os.getenv("OWNER_EXCLUSIONS"):
        env["owner_exclusion_list"] = _split_list(os.getenv("OWNER_EXCLUSIONS"))
    return env


def _normalise_keys(values: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase keys onto field names so layers merge predictably."""
    by_alias = {
        name: name for name in EngineConfig.model_fields
    }
    by_alias.update({to_camel(name): name for name in EngineConfig.model_fields})
    return {by_alias.get(key, key): value for key, value in values.items()}


def _normalise_sla_keys(values: Dict[str, Any]) -> Dict[str, Any]:
    by_alias = {to_camel(name): name for name in NcSlaHours.model_fields}
    return {by_alias.get(key, key): value for key, value in values.items()}


def _merge(base: Dict[str, Any], layer: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in _normalise_keys(layer).items():
        if key == "nc_sla_hours" and isinstance(value, dict):
            value = _normalise_sla_keys(value)
            if isinstance(merged.get(key), dict):
                value = {**merged[key], **value}
        merged[key] = value
    return merged


def load_config(
    path: Optional[str | Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> EngineConfig:
    """Build an ``EngineConfig`` from a JSON file, the environment and overrides.

    Raises:
        ConfigError: the file is unreadable or a value fails validation.
    """
    values: Dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file: {e}", config_path=str(path)) from e
        if not isinstance(raw, dict):
            raise ConfigError("Config file must hold a JSON object", config_path=str(path))
        section = raw.get("dashboard", raw)
        values = _merge(values, section if isinstance(section, dict) else {})

    values = _merge(values, _env_overrides())
    if overrides:
        values = _merge(values, overrides)

    return build_config(values, config_path=str(path) if path else None)


def build_config(values: Optional[Dict[str, Any] | EngineConfig] = None,
                 config_path: Optional[str] = None) -> EngineConfig:
    """Validate a plain mapping into an ``EngineConfig``."""
    if isinstance(values, EngineConfig):
        return values
    try:
        return EngineConfig.model_validate(values or {})
    except ValidationError as e:
        raise ConfigError(
            f"Invalid engine configuration ({e.error_count()} error(s))",
            config_path=config_path,
            errors=[err.get("msg", "") for err in e.errors()],
        ) from e
