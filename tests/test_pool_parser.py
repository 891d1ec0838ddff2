import os

from models import Program, ResourcePool, VisitType
from pool_parser import (
    get_all_users,
    get_pools_for_state,
    get_users_for_state,
    parse_resource_pool_csv,
)

I = VisitType.INITIAL
F = VisitType.FOLLOW_UP


def _csv(*rows):
    return "\n".join(",".join(row) for row in rows)


def _keyed(pools):
    return {(p.state, p.visit_type): p.users for p in pools}


class TestColumnInheritance:
    def test_merged_header_example(self):
        text = _csv(
            ["Florida", "", "Texas"],
            ["Initial", "Follow Up", "Initial"],
            ["John Smith", "Maria G", ""],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert pools == [
            ResourcePool(Program.HRT, "Florida", I, ["John Smith"]),
            ResourcePool(Program.HRT, "Florida", F, ["Maria G"]),
        ]

    def test_blank_header_inherits_nearest_state(self):
        text = _csv(
            ["Ohio", "", "", "Utah"],
            ["Initial", "Follow up", "Follow up", "Initial"],
            ["A", "B", "C", "D"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.TRT))
        assert keyed[("Ohio", F)] == ["B", "C"]
        assert keyed[("Utah", I)] == ["D"]

    def test_leading_blank_column_dropped(self):
        text = _csv(
            ["", "Florida"],
            ["Initial", "Initial"],
            ["Orphan", "John Smith"],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert [p.state for p in pools] == ["Florida"]
        assert all("Orphan" not in p.users for p in pools)

    def test_placeholder_header_treated_as_blank(self):
        text = _csv(
            ["Unnamed: 0", "Florida", "Unnamed: 2"],
            ["", "Initial", "Follow up"],
            ["Orphan", "A", "B"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.HRT))
        assert keyed == {("Florida", I): ["A"], ("Florida", F): ["B"]}

    def test_legend_header_column_dropped(self):
        text = _csv(
            ["Florida", "", "Key", ""],
            ["Initial", "Follow up", "", ""],
            ["A", "B", "Stray note", "Other note"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.HRT))
        assert keyed == {("Florida", I): ["A"], ("Florida", F): ["B"]}

    def test_legend_phrase_header_ends_state_block(self):
        text = _csv(
            ["Ohio", "Please add new states here", "", "Utah"],
            ["Initial", "", "", "Initial"],
            ["A", "Note", "Note", "D"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.TRT))
        assert keyed == {("Ohio", I): ["A"], ("Utah", I): ["D"]}

    def test_state_name_normalized(self):
        text = _csv(
            ["Texas (no marketing)", " New   York "],
            ["Initial", "Initial"],
            ["A", "B"],
        )
        states = [p.state for p in parse_resource_pool_csv(text, Program.HRT)]
        assert states == ["New York", "Texas"]


class TestVisitTypes:
    def test_label_defaults_to_initial(self):
        text = _csv(
            ["Florida", ""],
            ["Initial", "something else"],
            ["A", "B"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.HRT, visit_types=True))
        assert keyed == {("Florida", I): ["A", "B"]}

    def test_follow_match_is_case_insensitive(self):
        text = _csv(
            ["Florida", ""],
            ["INITIAL", "FOLLOW-UP visit"],
            ["A", "B"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.HRT))
        assert keyed[("Florida", F)] == ["B"]

    def test_simple_layout_has_no_visit_type(self):
        text = _csv(
            ["Florida", "Texas"],
            ["A", "B"],
            ["C", ""],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert pools == [
            ResourcePool(Program.HRT, "Florida", None, ["A", "C"]),
            ResourcePool(Program.HRT, "Texas", None, ["B"]),
        ]

    def test_name_containing_follow_is_not_a_label_row(self):
        text = _csv(
            ["Florida", "Texas"],
            ["Ann Followell", "Bob"],
            ["Carl", "Dee"],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert pools == [
            ResourcePool(Program.HRT, "Florida", None, ["Ann Followell", "Carl"]),
            ResourcePool(Program.HRT, "Texas", None, ["Bob", "Dee"]),
        ]

    def test_label_row_with_blank_cells_detected(self):
        text = _csv(
            ["Florida", "", "Texas"],
            ["Initial", "Follow up", ""],
            ["A", "B", "C"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.HRT))
        assert keyed == {("Florida", I): ["A"], ("Florida", F): ["B"], ("Texas", I): ["C"]}

    def test_forced_layout_never_ingests_unrecognized_labels(self):
        text = _csv(
            ["Florida", ""],
            ["New", "F/U"],
            ["A", "B"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.HRT, visit_types=True))
        assert keyed == {("Florida", I): ["A", "B"]}

    def test_forced_simple_layout_treats_label_row_as_data(self):
        text = _csv(["Florida"], ["Initial"], ["A"])
        pools = parse_resource_pool_csv(text, Program.HRT, visit_types=False)
        assert pools[0].users == ["Initial", "A"]

    def test_sorted_by_state_then_initial_first(self):
        text = _csv(
            ["Texas", "", "Alabama", ""],
            ["Follow up", "Initial", "Follow up", "Initial"],
            ["A", "B", "C", "D"],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert [(p.state, p.visit_type) for p in pools] == [
            ("Alabama", I),
            ("Alabama", F),
            ("Texas", I),
            ("Texas", F),
        ]


class TestFiltering:
    def test_sentinels_removed_regardless_of_case(self):
        text = _csv(
            ["Florida"],
            ["Initial"],
            [" closed "],
            ["KEY"],
            ["back-up"],
            ["Please Add more"],
            ["license pending"],
            ["Provider has moved"],
            ["Jane Doe"],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert pools[0].users == ["Jane Doe"]

    def test_names_normalized_and_deduped(self):
        text = _csv(
            ["Florida"],
            ["Initial"],
            ["  Jane   Doe "],
            ["Jane Doe"],
            ["jane doe"],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert pools[0].users == ["Jane Doe", "jane doe"]

    def test_empty_pool_dropped(self):
        text = _csv(
            ["Florida", "Texas"],
            ["Initial", "Initial"],
            ["A", "Closed"],
            ["", ""],
        )
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert [p.state for p in pools] == ["Florida"]
        assert all(p.users for p in pools)

    def test_short_rows_are_tolerated(self):
        text = _csv(
            ["Florida", "", "Texas"],
            ["Initial", "Follow up", "Initial"],
            ["A"],
            ["B", "C", "D"],
        )
        keyed = _keyed(parse_resource_pool_csv(text, Program.HRT))
        assert keyed[("Florida", I)] == ["A", "B"]
        assert keyed[("Texas", I)] == ["D"]

    def test_quoted_cells(self):
        text = 'Florida,\nInitial,Follow up\n"Smith, John","Doe ""JD"" Jane"\n'
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert pools[0].users == ["Smith, John"]
        assert pools[1].users == ['Doe "JD" Jane']


class TestDegenerateInput:
    def test_too_few_rows_with_visit_types(self):
        assert parse_resource_pool_csv(_csv(["Florida"], ["Initial"]), Program.HRT) == []

    def test_empty_text(self):
        assert parse_resource_pool_csv("", Program.HRT) == []

    def test_none_text(self):
        assert parse_resource_pool_csv(None, Program.HRT) == []

    def test_unbalanced_quote_recovers_rows(self, capsys):
        text = 'Florida\nInitial\nJane Doe\n"John Smith\n'
        pools = parse_resource_pool_csv(text, Program.HRT)
        assert pools[0].users[0] == "Jane Doe"
        assert "[WARN]" in capsys.readouterr().err

    def test_byte_order_mark_stripped(self):
        text = "\ufeffFlorida\nInitial\nA\n"
        assert parse_resource_pool_csv(text, Program.HRT)[0].state == "Florida"


class TestSampleData:
    def test_hrt_sample(self, repo_data_dir):
        with open(os.path.join(repo_data_dir, "hrt.csv"), encoding="utf-8") as fh:
            pools = parse_resource_pool_csv(fh.read(), Program.HRT)
        assert _keyed(pools) == {
            ("Florida", I): ["John Smith", "Jane Doe", "Priya Patel"],
            ("Florida", F): ["Maria Garcia", "John Smith"],
            ("New York", I): ["Priya Patel", "Jane Doe"],
            ("New York", F): ["John Smith", "Jane Doe"],
            ("Texas", I): ["Ana Lopez", "Sam Lee"],
            ("Texas", F): ["Ana Lopez", "Maria Garcia"],
        }


class TestLookups:
    POOLS = [
        ResourcePool(Program.HRT, "Florida", I, ["B", "A"]),
        ResourcePool(Program.HRT, "Florida", F, ["A", "C"]),
        ResourcePool(Program.HRT, "Texas", I, ["A"]),
    ]

    def test_pools_for_state(self):
        assert len(get_pools_for_state(self.POOLS, "Florida")) == 2
        assert get_pools_for_state(self.POOLS, "Ohio") == []

    def test_users_for_state_merges_visit_types(self):
        assert get_users_for_state(self.POOLS, "Florida") == ["B", "A", "C"]

    def test_users_for_state_single_visit_type(self):
        assert get_users_for_state(self.POOLS, "Florida", F) == ["A", "C"]

    def test_all_users_sorted(self):
        rows = get_all_users(self.POOLS)
        assert [(r["name"], r["state"], r["visit_type"]) for r in rows] == [
            ("A", "Florida", I),
            ("A", "Florida", F),
            ("A", "Texas", I),
            ("B", "Florida", I),
            ("C", "Florida", F),
        ]
