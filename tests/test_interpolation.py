from grabber.core.interpolation import interpolate
from grabber.core.store import Store


def test_plain_strings_are_untouched() -> None:
    params = {"message": "no templates here", "n": 3}
    assert interpolate(params, Store()) == params


def test_scalars_are_substituted_textually() -> None:
    store = Store({"NAME": "alice", "N": 3, "OK": True, "NONE": None})
    out = interpolate({"m": "hi {{NAME}} n={{ N }} ok={{OK}} none={{NONE}}"}, store)
    assert out == {"m": "hi alice n=3 ok=true none=null"}


def test_composite_replaces_whole_field_by_reference() -> None:
    store = Store({"LIST": ["a", "b"]})
    out = interpolate({"value": "{{LIST}}"}, store)
    assert out["value"] is store.get("LIST")


def test_missing_keys_are_left_verbatim() -> None:
    assert interpolate({"m": "x {{NOPE}} y"}, Store()) == {"m": "x {{NOPE}} y"}


def test_sequences_recurse_and_input_is_not_mutated() -> None:
    store = Store({"A": "1"})
    params = {"args": ["{{A}}", ["{{A}}"], 5, {"k": "{{A}}"}]}
    out = interpolate(params, store)
    assert out == {"args": ["1", ["1"], 5, {"k": "{{A}}"}]}
    assert params == {"args": ["{{A}}", ["{{A}}"], 5, {"k": "{{A}}"}]}
    assert out is not params
