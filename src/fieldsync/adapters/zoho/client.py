"""Zoho CRM module exposed as a sync source.

Records are addressed by their key field (``Email`` by default). Zoho only
keeps a record-level modification time, so every field snapshot carries the
record's ``timestamp_field`` value. Writes upsert the field together with that
timestamp; point ``timestamp_field`` at a custom datetime field when the CRM
does not allow writing ``Modified_Time``. Zoho stores datetimes in whole
seconds, which the source reports as its ``timestamp_resolution``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from fieldsync.adapters.http_resilience import RateLimit, ResilienceConfig, ResilientClient
from fieldsync.config.zoho import ZohoConfig
from fieldsync.domain.errors import Rejected, SourceUnavailable
from fieldsync.domain.ports import BatchFetchingSource, WriteAck
from fieldsync.domain.snapshots import SECOND, FieldSnapshot, TimestampPrecision

from .auth import ZohoOAuth
from .schema import ErrorResponse, SearchResponse, UpsertResponse

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from fieldsync.adapters.http_resilience import RequestOptions
    from fieldsync.domain.ports import RecordKey

log = getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 10.0
_REJECTED_STATUSES = frozenset({400, 422})


def default_resilience_config(api_domain: str) -> ResilienceConfig:
    return ResilienceConfig(
        name="zoho",
        base_url=api_domain,
        timeout_seconds=_DEFAULT_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
    )


@dataclass(slots=True)
class ZohoCrmSource:
    client: ResilientClient
    auth: httpx.Auth | None = None
    name: str = "zoho"
    module: str = "Contacts"
    key_field: str = "Email"
    search_param: str = "email"
    timestamp_field: str = "Modified_Time"
    api_version: str = "v2"
    timestamp_precision: TimestampPrecision = TimestampPrecision.RECORD
    timestamp_resolution: timedelta = SECOND

    @property
    def module_path(self) -> str:
        return f"/crm/{self.api_version}/{self.module}"

    async def fetch(self, key: RecordKey, field: str) -> FieldSnapshot | None:
        snapshots = await self.fetch_many(key, [field])
        return snapshots[field]

    async def fetch_many(
        self,
        key: RecordKey,
        fields: Sequence[str],
    ) -> Mapping[str, FieldSnapshot | None]:
        record = await self._find_record(key)
        if record is None:
            return dict.fromkeys(fields)
        observed_at = record.get(self.timestamp_field)
        return {
            native: FieldSnapshot(value=record.get(native), observed_at=observed_at)  # type: ignore[arg-type]
            for native in fields
        }

    async def write(
        self,
        key: RecordKey,
        field: str,
        value: object,
        timestamp: datetime,
    ) -> WriteAck:
        record: dict[str, object] = {self.key_field: key, field: _to_wire(value)}
        record[self.timestamp_field] = _format_timestamp(timestamp)
        body = {"data": [record], "duplicate_check_fields": [self.key_field]}

        response = await self._request("POST", f"{self.module_path}/upsert", writing=True, json=body)
        try:
            upsert = UpsertResponse.model_validate(response.json())
        except (ValidationError, ValueError) as exc:
            raise SourceUnavailable("Unexpected Zoho upsert response payload") from exc
        if not upsert.data:
            raise SourceUnavailable("Zoho upsert returned no result")

        detail = upsert.data[0]
        if detail.status == "error":
            raise Rejected(f"Zoho rejected {field}: {detail.code} {detail.message}".strip())
        log.debug("Zoho upsert of %s for %r: %s", field, key, detail.code)
        return WriteAck(source=self.name, field=field, detail=detail.action or detail.code)

    async def _find_record(self, key: RecordKey) -> dict[str, object] | None:
        response = await self._request(
            "GET",
            f"{self.module_path}/search",
            params={self.search_param: str(key)},
        )
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            search = SearchResponse.model_validate(response.json())
        except (ValidationError, ValueError) as exc:
            raise SourceUnavailable("Unexpected Zoho search response payload") from exc
        if not search.data:
            return None
        if len(search.data) > 1:
            log.warning(
                "Zoho returned %s %s records for %r; using the first",
                len(search.data),
                self.module,
                key,
            )
        return search.data[0]

    async def _request(
        self,
        method: str,
        url: str,
        *,
        writing: bool = False,
        **kwargs: object,
    ) -> httpx.Response:
        options: RequestOptions = kwargs  # type: ignore[assignment]
        if self.auth is not None:
            options["auth"] = self.auth
        try:
            response = await self.client.request(method, url, **options)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"Zoho request failed: {exc}") from exc

        if writing and response.status_code in _REJECTED_STATUSES:
            error = _error_payload(response)
            raise Rejected(f"Zoho rejected the write: {error.code} {error.message}".strip())
        if response.is_error:
            error = _error_payload(response)
            log.error(f"Zoho API error {response.status_code}: {error.code} {error.message}")
            raise SourceUnavailable(f"Zoho returned HTTP {response.status_code} ({error.code})")
        return response


def build_zoho_source(
    options: Mapping[str, object],
    *,
    name: str = "zoho",
    config: ZohoConfig | None = None,
    client: ResilientClient | None = None,
    precision: TimestampPrecision = TimestampPrecision.RECORD,
) -> ZohoCrmSource:
    """Build a source from the ``[sources.options]`` table of a schema file."""

    effective = config or ZohoConfig.from_environment()
    return ZohoCrmSource(
        client=client or ResilientClient(default_resilience_config(effective.api_domain)),
        auth=ZohoOAuth(effective),
        name=name,
        module=str(options.get("module", "Contacts")),
        key_field=str(options.get("key_field", "Email")),
        search_param=str(options.get("search_param", "email")),
        timestamp_field=str(options.get("timestamp_field", "Modified_Time")),
        api_version=str(options.get("api_version", "v2")),
        timestamp_precision=precision,
    )


def _error_payload(response: httpx.Response) -> ErrorResponse:
    try:
        return ErrorResponse.model_validate(response.json())
    except (ValidationError, ValueError):
        return ErrorResponse(message=response.text[:200])


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="seconds")


def _to_wire(value: object) -> object:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)  # type: ignore[reportUnknownArgumentType]
    return value


if TYPE_CHECKING:
    _source_check: BatchFetchingSource = ZohoCrmSource(client=ResilientClient(ResilienceConfig("zoho")))
