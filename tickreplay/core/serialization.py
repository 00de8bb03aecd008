import orjson
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from litestar.response import Response

from tickreplay.core.models import Bar, MarketRecord, Trade

RECORD_KINDS = {"trade": Trade, "bar": Bar}


class ORJSONResponse(Response):
    """
    High-performance JSON response using orjson.
    """

    def render(self, content: Any, media_type: Any = None, enc_hook: Any = None) -> bytes:
        return orjson.dumps(content, default=_default)


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """Render a Decimal without exponent notation ('Infinity' for the unbounded sentinel)."""
    if value is None:
        return None
    if not value.is_finite():
        return "Infinity" if value > 0 else str(value)
    return format(value, "f")


def _default(obj: Any):
    if isinstance(obj, Decimal):
        return decimal_str(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def encode_records(records: Iterable[MarketRecord], kind: str, generation: int) -> bytes:
    """Serialize a record sequence into the envelope stored by the remote cache tier."""
    return orjson.dumps(
        {
            "generation": generation,
            "kind": kind,
            "records": [record.model_dump(mode="json") for record in records],
        }
    )


def decode_records(payload: bytes, kind: str, generation: int) -> Optional[List[MarketRecord]]:
    """
    Inverse of ``encode_records``.

    Returns None when the envelope belongs to another generation or record kind,
    so stale entries behave like misses. So does anything that is not an
    envelope at all (another writer sharing the key space).
    """
    envelope = orjson.loads(payload)
    if not isinstance(envelope, dict) or not isinstance(envelope.get("records"), list):
        return None
    if envelope.get("generation") != generation or envelope.get("kind") != kind:
        return None
    model = RECORD_KINDS[kind]
    return [model.model_validate(item) for item in envelope["records"]]
