from sppmon.deploy import render_inventory, parse_inventory


def test_render_header_and_rows():
    text = render_inventory(["r2", "r1"], "r2")
    lines = text.splitlines()

    assert lines[0].startswith("# HELP sppmon_release Release inventory (1 = present on disk).")
    assert lines[1] == "# TYPE sppmon_release gauge"
    rows = [line for line in lines if not line.startswith("#")]
    assert len(rows) == 2
    assert all(line.startswith("sppmon_release{") and line.endswith(" 1.0") for line in rows)
    assert parse_inventory(text) == {"r2": True, "r1": False}


def test_exactly_one_current_row():
    rows = parse_inventory(render_inventory(["r3", "r2", "r1"], "r2"))
    assert rows == {"r3": False, "r2": True, "r1": False}
    assert sum(rows.values()) == 1


def test_no_current_pointer():
    rows = parse_inventory(render_inventory(["r1"], None))
    assert rows == {"r1": False}


def test_empty_inventory_still_has_metadata():
    text = render_inventory([], None)
    assert "# TYPE sppmon_release gauge" in text
    assert parse_inventory(text) == {}
