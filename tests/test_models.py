import logging
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from analytics.models import ModelResolver

ALIASES = {"Tesla SXM4": ["SXM4", "SXM4 HGX"], "SXM6": ["Tesla SXM6"]}


def test_resolve_is_exact_and_case_insensitive():
    r = ModelResolver(ALIASES)
    assert r.resolve("sxm4  hgx") == "Tesla SXM4"
    assert r.resolve("Tesla SXM4") == "Tesla SXM4"
    assert r.resolve("SXM40") is None
    assert r.resolve("SXM") is None


def test_canonical_falls_back_to_input():
    r = ModelResolver(ALIASES)
    assert r.canonical("tesla sxm6") == "SXM6"
    assert r.canonical(" Unknown X ") == "Unknown X"
    assert r.canonical(None) == ""


def test_same_model():
    r = ModelResolver(ALIASES)
    assert r.same_model("SXM4", "SXM4 HGX")
    assert r.same_model("abc", "ABC")
    assert not r.same_model("SXM4", "SXM6")
    assert not r.same_model("X1", "X2")


def test_resolve_selected_prefers_exact_key_and_logs_misses(caplog):
    r = ModelResolver(ALIASES)
    with caplog.at_level(logging.INFO, logger="analytics.models"):
        out = r.resolve_selected(["Tesla SXM4", "SXM6", "SXM9"], ["SXM4", "SXM6", "Tesla SXM6"])
    assert out == {"Tesla SXM4": "SXM4", "SXM6": "SXM6"}
    assert "SXM9" in caplog.text
