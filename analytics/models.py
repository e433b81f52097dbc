# -*- coding: utf-8 -*-
"""Model-name resolution via an explicit alias table (exact, case-insensitive)."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from config.analytics_config import get_model_aliases

logger = logging.getLogger(__name__)


def _norm(s) -> str:
    return " ".join((str(s) if s is not None else "").split()).upper()


class ModelResolver:
    """
    canonicalName -> [aliases]. A name resolves only when it equals a canonical name
    or one of its aliases after whitespace/case normalization; no substring matching.
    """

    def __init__(self, aliases: Optional[Dict[str, List[str]]] = None):
        if aliases is None:
            aliases = get_model_aliases()
        self._lookup: Dict[str, str] = {}
        for canonical, names in aliases.items():
            self._lookup.setdefault(_norm(canonical), canonical)
            for name in names or []:
                self._lookup.setdefault(_norm(name), canonical)

    def resolve(self, name) -> Optional[str]:
        """Canonical name for `name`, or None when it is not in the table."""
        return self._lookup.get(_norm(name))

    def canonical(self, name) -> str:
        """Canonical name, or the stripped input when unknown."""
        return self.resolve(name) or (str(name).strip() if name is not None else "")

    def same_model(self, a, b) -> bool:
        if _norm(a) == _norm(b):
            return True
        ra = self.resolve(a)
        return ra is not None and ra == self.resolve(b)

    def resolve_selected(self, selected: Iterable[str], available: Iterable[str]) -> Dict[str, str]:
        """
        Map each requested model to the key present in `available`.
        Unmatched requests are logged and left out.
        """
        available = list(available)
        out: Dict[str, str] = {}
        for want in selected:
            match = None
            for key in available:
                if key == want:
                    match = key
                    break
            if match is None:
                for key in available:
                    if self.same_model(key, want):
                        match = key
                        break
            if match is None:
                logger.info("No model match found for %r; available models were %s", want, available)
                continue
            out[want] = match
        return out
