"""Deterministic cache keys for normalized generation requests."""

import hashlib
import json

from ...domain.models import NormalizedRequest

# Serialization order is part of the key; append new fields at the end only.
CACHE_KEY_FIELDS = (
    "prompt",
    "go_fast",
    "megapixels",
    "num_outputs",
    "aspect_ratio",
    "num_inference_steps",
    "output_format",
    "output_quality",
    "filename",
    "output_dir",
)


def compute_cache_key(request: NormalizedRequest) -> str:
    """Return the SHA-256 hex digest of the request's canonical JSON form."""
    values = request.model_dump(mode="json")
    canonical = json.dumps(
        [[field, values[field]] for field in CACHE_KEY_FIELDS],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
