from sensory_taggable.db import TagORM
from sensory_taggable.query import (
    ANY_OF_WEIGHT_BIAS,
    ByName,
    ById,
    ClauseKind,
    TagFilters,
    compile_plan,
)


def _tags(*rows):
    return [TagORM(id=tag_id, name=name, item_count=count) for tag_id, name, count in rows]


def test_accumulator_records_clauses_in_order():
    """Одиночные условия добавляются по одному на значение, any_of - одним условием."""
    filters = (
        TagFilters()
        .with_tag("sports", "music")
        .with_tag_id(7)
        .with_any_tag(["a", "b", "a"])
        .with_any_tag_id([1, 2])
    )

    clauses = filters.clauses
    assert [(c.kind, c.values, c.any_of) for c in clauses] == [
        (ClauseKind.TAG_NAME, ("sports",), False),
        (ClauseKind.TAG_NAME, ("music",), False),
        (ClauseKind.TAG_ID, (7,), False),
        (ClauseKind.TAG_NAME, ("a", "b"), True),
        (ClauseKind.TAG_ID, (1, 2), True),
    ]
    assert filters.requested_ids() == {7, 1, 2}
    assert filters.requested_names() == {"sports", "music", "a", "b"}


def test_refs_are_split_by_kind():
    filters = TagFilters().with_ref(ByName("x"), ById(3)).with_any_ref([ById(1), ByName("y"), ById(2)])

    assert [(c.kind, c.values, c.any_of) for c in filters] == [
        (ClauseKind.TAG_NAME, ("x",), False),
        (ClauseKind.TAG_ID, (3,), False),
        (ClauseKind.TAG_ID, (1, 2), True),
        (ClauseKind.TAG_NAME, ("y",), True),
    ]


def test_empty_any_of_still_adds_a_clause():
    assert len(TagFilters().with_any_tag([])) == 1
    assert len(TagFilters().with_any_ref([])) == 1


def test_plan_anchors_on_the_most_selective_tag():
    # --- ARRANGE ---
    tags = _tags((1, "sports", 3), (2, "music", 10))
    clauses = TagFilters().with_tag("music", "sports").clauses

    # --- ACT ---
    plan = compile_plan(clauses, tags)

    # --- ASSERT ---
    assert plan.anchor.tag_ids == (1,)
    assert [c.tag_ids for c in plan.joins] == [(2,)]
    assert plan.distinct is False


def test_any_of_clauses_sort_after_single_clauses():
    tags = _tags((1, "x", 1), (2, "y", 2), (3, "z", 50_000))
    clauses = TagFilters().with_any_tag(["x", "y"]).with_tag("z").clauses

    plan = compile_plan(clauses, tags)

    assert plan.anchor.tag_ids == (3,)
    assert plan.joins[0].tag_ids == (1, 2)
    assert plan.joins[0].weight == ANY_OF_WEIGHT_BIAS + 2
    assert plan.distinct is True


def test_any_of_keeps_only_found_tags():
    tags = _tags((1, "x", 4))
    clauses = TagFilters().with_any_tag(["x", "missing"]).clauses

    plan = compile_plan(clauses, tags)

    assert plan.anchor.tag_ids == (1,)
    assert plan.joins == ()


def test_mixed_id_and_name_lookup():
    tags = _tags((1, "a", 5), (2, "b", 50))
    clauses = TagFilters().with_tag_id(2).with_tag("a").clauses

    plan = compile_plan(clauses, tags)

    assert plan.anchor.clause.kind is ClauseKind.TAG_NAME
    assert plan.anchor.tag_ids == (1,)
    assert plan.joins[0].tag_ids == (2,)


def test_unsatisfiable_filters():
    tags = _tags((1, "a", 5))

    assert compile_plan(TagFilters().with_tag("a", "nonexistent").clauses, tags) is None
    assert compile_plan(TagFilters().with_tag_id(99).clauses, tags) is None
    assert compile_plan(TagFilters().with_any_tag(["nope", "never"]).clauses, tags) is None
    assert compile_plan(TagFilters().with_any_tag_id([]).clauses, tags) is None
    # Без условий запрос ничего не выбирает
    assert compile_plan((), tags) is None


def test_names_are_case_sensitive():
    tags = _tags((1, "Python", 1))

    assert compile_plan(TagFilters().with_tag("python").clauses, tags) is None
    assert compile_plan(TagFilters().with_tag("Python").clauses, tags) is not None
