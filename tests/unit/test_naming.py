import pytest

from filerelay.utils.naming import display_name, encode_key, sanitize, split_name


def test_scenario_report_with_space():
    key = encode_key("My Report.pdf", 1700000000000)
    assert key == "uploads/My_Report__1700000000000.pdf"
    # sanitizing is lossy: the space does not come back
    assert display_name(key) == "My_Report.pdf"


def test_different_timestamps_give_different_keys():
    assert encode_key("a.txt", 1) != encode_key("a.txt", 2)


@pytest.mark.parametrize("raw", ["My Report", "héllo wörld", "a/b\\c", "", "___", "x-y_z", "ünï cödé!!"])
def test_sanitize_is_idempotent(raw):
    once = sanitize(raw)
    assert sanitize(once) == once
    assert all(c.isascii() and (c.isalnum() or c in "_-") for c in once)


def test_sanitize_replaces_each_character():
    assert sanitize("a b  c") == "a_b__c"
    assert sanitize("") == ""


@pytest.mark.parametrize("name", ["report.pdf", "My Report.pdf", "archive.tar.gz", "noext", "photo-1.JPG"])
def test_display_name_recovers_sanitized_base_and_ext(name):
    base, ext = split_name(name)
    assert display_name(encode_key(name, 1700000000000)) == sanitize(base) + ext


def test_split_name_edge_cases():
    assert split_name("archive.tar.gz") == ("archive.tar", ".gz")
    assert split_name(".env") == (".env", "")
    assert split_name("folder/file.txt") == ("file", ".txt")


def test_display_name_without_marker_is_unchanged():
    assert display_name("2023/05/old-file.pdf") == "old-file.pdf"
    assert display_name("plain.txt") == "plain.txt"


def test_counter_suffix_keeps_display_name():
    key = encode_key("a.txt", 1700000000000, counter=2)
    assert key == "uploads/a__1700000000000_2.txt"
    assert display_name(key) == "a.txt"


def test_empty_prefix_gives_bare_name():
    assert encode_key("a.txt", 5, prefix="") == "a__5.txt"
