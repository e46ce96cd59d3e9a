"""Pydantic DTOs for source records and derived per-run values.

Source records arrive from Torii, which encodes felts and u64s either as
JSON numbers or as 0x-prefixed hex strings. Integer fields accept both,
and owner addresses are normalised so ownership and token rows join on
the same key.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AlertKind = Literal["revive", "hunger", "energy", "happiness", "hygiene", "test"]
VITALS: tuple[str, ...] = ("hunger", "energy", "happiness", "hygiene")


def parse_int(value: Any) -> Any:
    """Coerce decimal or 0x-hex strings to int; leave other values to pydantic."""
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        if text.lstrip("-").isdigit():
            return int(text)
    return value


def normalize_address(value: Any) -> Any:
    """Canonical form for hex addresses: lowercase, no leading zeros after 0x."""
    if isinstance(value, int):
        return hex(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0x"):
            digits = text[2:].lstrip("0")
            return "0x" + (digits or "0")
        return text
    return value


class VitalsSnapshot(BaseModel):
    """One pet's vitals as last recorded by the source.

    Vitals are clamped to [0, 100] on construction. Instances are frozen;
    decay produces a new snapshot instead of mutating this one.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    pet_id: int = Field(alias="beast_id")
    hunger: int
    energy: int
    happiness: int
    hygiene: int
    is_alive: bool
    last_timestamp: int  # epoch ms
    is_awake: bool | None = None
    clean_status: int | None = None

    @field_validator("pet_id", "last_timestamp", "clean_status", mode="before")
    @classmethod
    def _parse_ints(cls, v: Any) -> Any:
        return parse_int(v)

    @field_validator("hunger", "energy", "happiness", "hygiene", mode="before")
    @classmethod
    def _clamp_vital(cls, v: Any) -> int:
        v = parse_int(v)
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError(f"vital must be an integer, got {v!r}")
        return max(0, min(100, v))

    @field_validator("is_alive", "is_awake", mode="before")
    @classmethod
    def _parse_bool(cls, v: Any) -> Any:
        v = parse_int(v)
        if isinstance(v, int) and not isinstance(v, bool):
            return v != 0
        return v

    def vitals(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in VITALS}


class OwnershipRecord(BaseModel):
    """Maps one pet to its current owner."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    pet_id: int = Field(alias="beast_id")
    owner_id: str = Field(alias="player")

    @field_validator("pet_id", mode="before")
    @classmethod
    def _parse_pet_id(cls, v: Any) -> Any:
        return parse_int(v)

    @field_validator("owner_id", mode="before")
    @classmethod
    def _normalize_owner(cls, v: Any) -> Any:
        return normalize_address(v)


class TokenRecord(BaseModel):
    """Maps an owner to a device push token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    owner_id: str = Field(alias="player_address")
    device_token: str = Field(alias="token")

    @field_validator("owner_id", mode="before")
    @classmethod
    def _normalize_owner(cls, v: Any) -> Any:
        return normalize_address(v)


class NotifiableSubject(BaseModel):
    """A pet resolved to its owner and a deliverable push destination."""

    model_config = ConfigDict(frozen=True)

    snapshot: VitalsSnapshot
    owner_id: str
    device_token: str

    @property
    def pet_id(self) -> int:
        return self.snapshot.pet_id

    def with_snapshot(self, snapshot: VitalsSnapshot) -> NotifiableSubject:
        return self.model_copy(update={"snapshot": snapshot})


class Alert(BaseModel):
    """A rendered notification ready for dispatch."""

    model_config = ConfigDict(frozen=True)

    kind: AlertKind
    title: str
    body: str
