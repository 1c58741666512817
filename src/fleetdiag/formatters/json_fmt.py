"""JSON formatter."""

from __future__ import annotations

import json
from collections.abc import Sequence

from ..models import HostSnapshot
from .base import BaseFormatter


class JsonFormatter(BaseFormatter):
    """Format snapshots as a JSON array."""

    def format(self, snapshots: Sequence[HostSnapshot]) -> str:
        return json.dumps([s.to_dict() for s in snapshots], ensure_ascii=False, indent=2)
