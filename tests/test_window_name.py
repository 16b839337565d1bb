import hashlib

import pytest

from paw_monitor.config import DiscoveryConfig
from paw_monitor.models import WORKING, WAITING, DONE, WARNING
from paw_monitor.window_name import (
    EMOJI_WORKING, EMOJI_WAITING, EMOJI_DONE, EMOJI_WARNING, EMOJI_NEW,
    WindowCodec, classify_prefix, fold_status, to_camel_case,
)

NAMES = [
    "cancel-task-twice",
    "my_task_name",
    "implement-user-authentication-flow",
    "a",
    "",
    "already camel case words",
    "--leading-and-trailing--",
]


@pytest.mark.parametrize("name,expected", [
    ("cancel-task-twice", "cancelTaskTwice"),
    ("my_task_name", "myTaskName"),
    ("mixed-snake_case", "mixedSnakeCase"),
    ("--leading", "leading"),
    ("trailing--", "trailing"),
    ("double--sep", "doubleSep"),
    ("", ""),
])
def test_to_camel_case(name, expected):
    assert to_camel_case(name) == expected


def test_encode_truncates_after_camel_case():
    codec = WindowCodec()
    assert codec.encode("implement-user-authentication-flow") == "implementUserAuthent"
    assert codec.encode("fix-bug") == "fixBug"
    assert codec.encode("") == ""


@pytest.mark.parametrize("name", NAMES)
def test_encode_is_bounded(name):
    codec = WindowCodec()
    token = codec.encode(name)
    assert len(token) <= 20
    if len(to_camel_case(name)) <= 20:
        assert token == to_camel_case(name)


def test_legacy_and_hash_tokens():
    codec = WindowCodec()
    name = "implement-user-authentication-flow"
    assert codec.legacy_token(name) == "implement-user-authe"
    suffix = hashlib.sha1(name.encode("utf-8")).hexdigest()[:4]
    assert codec.hash_token(name) == "implementUserAu~" + suffix
    assert len(codec.hash_token(name)) == 20


@pytest.mark.parametrize("name", NAMES)
def test_matches_all_generations(name):
    codec = WindowCodec()
    assert codec.matches(codec.encode(name), name)
    assert codec.matches(codec.legacy_token(name), name)
    assert codec.matches(codec.hash_token(name), name)


def test_matches_rejects_other_name():
    codec = WindowCodec()
    other = "fix-logout-bug"
    for token in (codec.encode("fix-login-bug"), codec.legacy_token("fix-login-bug"),
                  codec.hash_token("fix-login-bug")):
        assert not codec.matches(token, other)


def test_custom_token_length():
    codec = WindowCodec(DiscoveryConfig(max_window_token_len=8))
    assert codec.encode("cancel-task-twice") == "cancelTa"
    assert codec.hash_token("cancel-task-twice").startswith("can~")


@pytest.mark.parametrize("emoji,status", [
    (EMOJI_WORKING, WORKING),
    (EMOJI_WAITING, WAITING),
    (EMOJI_DONE, DONE),
])
@pytest.mark.parametrize("name", NAMES)
def test_classify_round_trip(emoji, status, name):
    codec = WindowCodec()
    window_name = codec.window_name(status, name)
    assert window_name == emoji + codec.encode(name)
    assert classify_prefix(window_name) == (codec.encode(name), status, True)


def test_legacy_warning_folds_into_waiting():
    token, status, found = classify_prefix(EMOJI_WARNING + "myTask")
    assert (token, status, found) == ("myTask", WARNING, True)
    assert fold_status(status) == WAITING
    assert fold_status(WORKING) == WORKING


@pytest.mark.parametrize("window_name", ["regular-window", "", EMOJI_NEW + "main", "bash"])
def test_classify_non_task_windows(window_name):
    assert classify_prefix(window_name) == ("", None, False)


def test_emoji_only_is_task_window():
    codec = WindowCodec()
    assert codec.decode(EMOJI_DONE) == ("", True)
    assert codec.decode("zsh") == ("", False)


def test_window_name_refuses_warning():
    with pytest.raises(ValueError):
        WindowCodec().window_name(WARNING, "old-task")


def test_camel_case_keeps_chars_without_single_uppercase():
    assert to_camel_case("fix-ßtrasse-bug") == "fixßtrasseBug"
    assert to_camel_case("fix-émoji") == "fixÉmoji"


def test_hash_token_separator_comes_from_config():
    name = "cancel-task-twice"
    codec = WindowCodec(DiscoveryConfig(token_sep="#", token_id_len=6))
    suffix = hashlib.sha1(name.encode("utf-8")).hexdigest()[:6]
    assert codec.hash_token(name) == "cancelTaskTwi#" + suffix
    assert codec.matches(codec.hash_token(name), name)
