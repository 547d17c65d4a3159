"""Unit tests for the users resource mapper (no Flask involved)."""
from unittest.mock import MagicMock

import pytest

from usersapi.core.backend import BackendError, BackendValidationError
from usersapi.core.errors import (
    ApiError,
    BackendFailure,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    UnknownContextError,
    ValidationError,
)

NEW_USER = {
    "username": "test_user",
    "password": "test_password",
    "email": "test@example.com",
    "role": "author",
}


# ─────────────────────────────────────────────────────────────────────────────
# Lookup / Get
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("caller", ["anonymous", "subscriber", "admin"])
@pytest.mark.parametrize("missing_id", [0, 999, "abc", -5000])
def test_get_unknown_user_is_404_for_any_caller(mapper_for, users, caller, missing_id):
    caller_id = 0 if caller == "anonymous" else getattr(users, caller)
    with pytest.raises(NotFoundError) as exc_info:
        mapper_for(caller_id).get(missing_id)
    assert exc_info.value.code == "json_invalid_user"
    assert exc_info.value.status == 404


@pytest.mark.parametrize("context", ["view", "view-private", "edit"])
def test_self_access_succeeds_without_capabilities(mapper_for, users, context):
    user = mapper_for(users.subscriber).get(users.subscriber, context=context)
    assert user["id"] == users.subscriber


def test_view_requires_edit_posts(mapper_for, users):
    assert mapper_for(users.author).get(users.admin)["id"] == users.admin

    with pytest.raises(ForbiddenError) as exc_info:
        mapper_for(users.subscriber).get(users.admin)
    assert exc_info.value.code == "json_user_cannot_view"


def test_view_private_requires_list_users(mapper_for, users):
    with pytest.raises(ForbiddenError) as exc_info:
        mapper_for(users.editor).get(users.author, context="view-private")
    assert exc_info.value.code == "json_user_cannot_view"

    user = mapper_for(users.admin).get(users.author, context="view-private")
    assert user["username"] == "alice"


def test_edit_context_requires_edit_user(mapper_for, users):
    with pytest.raises(ForbiddenError) as exc_info:
        mapper_for(users.editor).get(users.author, context="edit")
    assert exc_info.value.code == "json_user_cannot_edit"

    user = mapper_for(users.admin).get(users.author, context="edit")
    assert "registered" in user


def test_unknown_context_is_400(mapper_for, users):
    with pytest.raises(UnknownContextError) as exc_info:
        mapper_for(users.admin).get(users.author, context="embed")
    assert exc_info.value.code == "json_error_unknown_context"
    assert exc_info.value.status == 400


def test_unknown_context_on_self_is_still_400(mapper_for, users):
    with pytest.raises(UnknownContextError):
        mapper_for(users.author).get(users.author, context="bogus")


def test_anonymous_caller_cannot_view(mapper_for, users):
    with pytest.raises(ForbiddenError):
        mapper_for(0).get(users.author)


# ─────────────────────────────────────────────────────────────────────────────
# List
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("caller", ["editor", "author", "subscriber"])
def test_list_forbidden_without_list_users(mapper_for, users, caller):
    with pytest.raises(ForbiddenError) as exc_info:
        mapper_for(getattr(users, caller)).list_users()
    assert exc_info.value.code == "json_user_cannot_list"
    assert exc_info.value.status == 403


def test_list_orders_by_login_by_default(mapper_for, users):
    result = mapper_for(users.admin).list_users()
    assert [u["slug"] for u in result] == ["admin", "alice", "bob", "eddie", "sam"]


def test_list_filters_and_paginates(mapper_for, users):
    mapper = mapper_for(users.admin)
    authors = mapper.list_users({"role": "author"})
    assert [u["id"] for u in authors] == [users.author, users.author2]

    page_two = mapper.list_users({"number": 2}, page=2)
    assert [u["name"] for u in page_two] == ["bob", "eddie"]


def test_list_page_below_one_is_first_page(mapper_for, users):
    mapper = mapper_for(users.admin)
    assert mapper.list_users({"number": 1}, page=0) == mapper.list_users({"number": 1}, page=1)


def test_list_uses_default_page_size(mapper_for, users):
    assert len(mapper_for(users.admin, default_page_size=3).list_users()) == 3


def test_list_empty_result_is_empty_list(mapper_for, users):
    assert mapper_for(users.admin).list_users({"search": "nobody-matches"}) == []


def test_list_shapes_each_row_through_get(mapper_for, users):
    rows = mapper_for(users.admin).list_users(context="edit")
    assert all("extra_capabilities" in row for row in rows)


def test_list_with_unknown_context_is_400(mapper_for, users):
    with pytest.raises(UnknownContextError):
        mapper_for(users.admin).list_users(context="nope")


def test_user_query_filter_adjusts_args(mapper_for, users, hooks):
    seen = {}

    def only_editors(args, filter, context, page):
        seen.update(filter=filter, context=context, page=page)
        return {**args, "role": "editor"}

    hooks.add_filter("user_query", only_editors)
    result = mapper_for(users.admin).list_users({"search": "e"}, context="view", page=1)

    assert [u["id"] for u in result] == [users.editor]
    assert seen == {"filter": {"search": "e"}, "context": "view", "page": 1}


# ─────────────────────────────────────────────────────────────────────────────
# Create
# ─────────────────────────────────────────────────────────────────────────────

def test_create_returns_201_with_location(mapper_for, users, backend):
    response = mapper_for(users.admin).create(dict(NEW_USER))

    assert response.status == 201
    new_id = response.data["id"]
    assert response.headers["Location"] == f"http://localhost/api/users/{new_id}"
    assert response.data["username"] == "test_user"
    assert response.data["roles"] == ["author"]
    assert backend.check_password(new_id, "test_password")


def test_create_shapes_at_requested_context(mapper_for, users):
    response = mapper_for(users.admin).create(dict(NEW_USER), context="view")
    assert "username" not in response.data


def test_create_requires_create_users(mapper_for, users, backend):
    before = len(backend.query({}))
    with pytest.raises(ForbiddenError) as exc_info:
        mapper_for(users.editor).create(dict(NEW_USER))
    assert exc_info.value.code == "json_cannot_create"
    assert len(backend.query({})) == before


def test_create_with_id_is_rejected_even_for_admin(mapper_for, users):
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).create({**NEW_USER, "id": users.author})
    assert exc_info.value.code == "json_user_exists"
    assert exc_info.value.status == 400


def test_create_with_zero_string_id_is_create(mapper_for, users, backend):
    response = mapper_for(users.admin).create({**NEW_USER, "id": "0"})
    assert response.status == 201
    assert backend.lookup(response.data["id"]).login == "test_user"


@pytest.mark.parametrize(
    "payload,missing",
    [
        ({}, "username"),
        ({"password": "p", "email": "x@example.com"}, "username"),
        ({"username": "u", "email": "x@example.com"}, "password"),
        ({"username": "u", "password": "p"}, "email"),
        ({"username": "u", "password": "", "email": ""}, "password"),
    ],
)
def test_create_names_first_missing_parameter(mapper_for, users, payload, missing):
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).create(payload)
    assert exc_info.value.code == "json_missing_callback_param"
    assert exc_info.value.message == f"Missing parameter {missing}"


def test_create_with_unknown_role_does_not_mutate(mapper_for, users, backend):
    before = len(backend.query({}))
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).create({**NEW_USER, "role": "overlord"})
    assert exc_info.value.code == "json_invalid_role"
    assert len(backend.query({})) == before


@pytest.mark.parametrize("url", ["javascript:alert(1)", "http://exa mple.com", "http://example.com/<script>"])
def test_create_with_unsafe_url_is_rejected(mapper_for, users, url):
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).create({**NEW_USER, "url": url})
    assert exc_info.value.code == "json_invalid_url"


def test_create_accepts_clean_url(mapper_for, users):
    response = mapper_for(users.admin).create({**NEW_USER, "url": "https://example.com/~test"})
    assert response.data["url"] == "https://example.com/~test"


def test_create_maps_backend_validation_to_400(mapper_for, users):
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).create({**NEW_USER, "username": "alice"})
    assert exc_info.value.code == "existing_user_login"


def test_create_maps_backend_failure_to_500(mapper_for, users, backend, monkeypatch):
    monkeypatch.setattr(backend, "insert", MagicMock(side_effect=BackendError("platform_unreachable", "down")))
    with pytest.raises(BackendFailure) as exc_info:
        mapper_for(users.admin).create(dict(NEW_USER))
    assert exc_info.value.status == 500
    assert exc_info.value.code == "platform_unreachable"


def test_pre_insert_filter_can_rewrite_record(mapper_for, users, hooks):
    hooks.add_filter("pre_insert_user", lambda record, data: {**record, "description": "from hook"})
    response = mapper_for(users.admin).create(dict(NEW_USER))
    assert response.data["description"] == "from hook"


def test_pre_insert_filter_can_veto(mapper_for, users, hooks, backend):
    def veto(record, data):
        raise ValidationError("json_user_blocked", "Blocked by policy.")

    hooks.add_filter("pre_insert_user", veto)
    before = len(backend.query({}))
    with pytest.raises(ApiError) as exc_info:
        mapper_for(users.admin).create(dict(NEW_USER))
    assert exc_info.value.code == "json_user_blocked"
    assert len(backend.query({})) == before


def test_insert_user_action_receives_record(mapper_for, users, hooks):
    calls = []
    hooks.add_action("insert_user", lambda record, data, is_update: calls.append((record, is_update)))

    response = mapper_for(users.admin).create(dict(NEW_USER))

    record, is_update = calls[0]
    assert is_update is False
    assert record["ID"] == response.data["id"]
    assert record["user_login"] == "test_user"


def test_failing_insert_action_does_not_fail_create(mapper_for, users, hooks):
    def broken(*args):
        raise RuntimeError("listener down")

    hooks.add_action("insert_user", broken)
    response = mapper_for(users.admin).create(dict(NEW_USER))
    assert response.status == 201


# ─────────────────────────────────────────────────────────────────────────────
# Update
# ─────────────────────────────────────────────────────────────────────────────

def test_update_preserves_password_hash(mapper_for, users, backend):
    before = backend.lookup(users.author).password_hash

    response = mapper_for(users.admin).update(users.author, {"first_name": "New Name"})

    assert response.status == 200
    assert response.data["first_name"] == "New Name"
    assert backend.lookup(users.author).password_hash == before


def test_update_with_password_rehashes(mapper_for, users, backend):
    mapper_for(users.admin).update(users.author, {"password": "rotated"})
    assert backend.check_password(users.author, "rotated")
    assert not backend.check_password(users.author, "author-pass")


def test_update_with_empty_password_keeps_hash(mapper_for, users, backend):
    before = backend.lookup(users.author).password_hash
    mapper_for(users.author).update(users.author, {"password": ""})
    assert backend.lookup(users.author).password_hash == before
    assert backend.check_password(users.author, "author-pass")
    assert not backend.check_password(users.author, "")


@pytest.mark.parametrize("field", ["name", "first_name", "last_name", "nickname", "description", "slug"])
def test_update_rejects_non_string_field(mapper_for, users, backend, field):
    before = backend.lookup(users.author)
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.author).update(users.author, {field: 5})
    assert exc_info.value.code == "json_invalid_param"
    assert exc_info.value.message == f"Invalid parameter {field}"
    assert backend.lookup(users.author) == before


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"password": 12345}, "password"),
        ({"username": ["zed"]}, "username"),
        ({"email": {"addr": "z@example.com"}}, "email"),
    ],
)
def test_create_rejects_non_string_field(mapper_for, users, backend, overrides, field):
    before = len(backend.query({}))
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).create({**NEW_USER, **overrides})
    assert exc_info.value.code == "json_invalid_param"
    assert exc_info.value.message == f"Invalid parameter {field}"
    assert len(backend.query({})) == before


def test_update_leaves_absent_fields_untouched(mapper_for, users, backend):
    backend.update({"ID": users.author, "last_name": "Liddell", "description": "writer"})
    mapper_for(users.admin).update(users.author, {"first_name": "Alice"})
    user = backend.lookup(users.author)
    assert (user.first_name, user.last_name, user.description) == ("Alice", "Liddell", "writer")


def test_update_self_without_edit_users(mapper_for, users):
    response = mapper_for(users.subscriber).update(users.subscriber, {"nickname": "sammy"})
    assert response.data["nickname"] == "sammy"


def test_update_other_requires_edit_user(mapper_for, users):
    with pytest.raises(ForbiddenError) as exc_info:
        mapper_for(users.editor).update(users.author, {"first_name": "x"})
    assert exc_info.value.code == "json_user_cannot_edit"


def test_update_unknown_user_is_404(mapper_for, users):
    with pytest.raises(NotFoundError):
        mapper_for(users.admin).update(999, {"first_name": "x"})


def test_update_ignores_id_in_body(mapper_for, users, backend):
    mapper_for(users.admin).update(users.author, {"id": users.author2, "first_name": "Target"})
    assert backend.lookup(users.author).first_name == "Target"
    assert backend.lookup(users.author2).first_name == ""


def test_update_always_shapes_at_edit(mapper_for, users):
    response = mapper_for(users.admin).update(users.author, {"nickname": "al"}, context="view")
    assert "extra_capabilities" in response.data


def test_update_changes_role(mapper_for, users):
    response = mapper_for(users.admin).update(users.author, {"role": "editor"})
    assert response.data["roles"] == ["editor"]
    assert response.data["capabilities"]["edit_others_posts"] is True


def test_update_invalid_role_does_not_mutate(mapper_for, users, backend):
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).update(users.author, {"role": "ghost", "first_name": "Changed"})
    assert exc_info.value.code == "json_invalid_role"
    assert backend.lookup(users.author).first_name == ""


def test_update_fires_insert_action_with_update_flag(mapper_for, users, hooks):
    flags = []
    hooks.add_action("insert_user", lambda record, data, is_update: flags.append(is_update))
    mapper_for(users.admin).update(users.author, {"nickname": "al"})
    assert flags == [True]


# ─────────────────────────────────────────────────────────────────────────────
# Delete
# ─────────────────────────────────────────────────────────────────────────────

def test_delete_removes_user(mapper_for, users, backend):
    response = mapper_for(users.admin).delete(users.subscriber)
    assert response.status == 200
    assert response.data == {"message": "Deleted user"}
    assert backend.lookup(users.subscriber) is None


def test_delete_reassigns_content(mapper_for, users, backend):
    post = backend.add_content(users.author)
    mapper_for(users.admin).delete(users.author, reassign=users.author2)
    assert backend.content_author(post) == users.author2


def test_delete_without_reassign_removes_content(mapper_for, users, backend):
    post = backend.add_content(users.author)
    mapper_for(users.admin).delete(users.author)
    assert backend.content_author(post) is None


@pytest.mark.parametrize("reassign", ["self", 999, "abc"])
def test_delete_invalid_reassign_keeps_user(mapper_for, users, backend, reassign):
    reassign_id = users.author if reassign == "self" else reassign
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).delete(users.author, reassign=reassign_id)
    assert exc_info.value.code == "json_user_invalid_reassign"
    assert backend.lookup(users.author) is not None


def test_delete_requires_delete_user(mapper_for, users, backend):
    with pytest.raises(ForbiddenError) as exc_info:
        mapper_for(users.editor).delete(users.author)
    assert exc_info.value.code == "json_user_cannot_delete"
    assert backend.lookup(users.author) is not None


def test_delete_self_still_needs_delete_users(mapper_for, users):
    with pytest.raises(ForbiddenError):
        mapper_for(users.author).delete(users.author)


def test_delete_unknown_user_is_404(mapper_for, users):
    with pytest.raises(NotFoundError):
        mapper_for(users.admin).delete(999)


def test_delete_backend_refusal_is_500(mapper_for, users, backend, monkeypatch):
    monkeypatch.setattr(backend, "delete", MagicMock(return_value=False))
    with pytest.raises(BackendFailure) as exc_info:
        mapper_for(users.admin).delete(users.subscriber)
    assert exc_info.value.code == "json_cannot_delete"


def test_delete_forwards_force(mapper_for, users, backend, monkeypatch):
    delete = MagicMock(return_value=True)
    monkeypatch.setattr(backend, "delete", delete)
    mapper_for(users.admin).delete(users.subscriber, force=True)
    delete.assert_called_once_with(users.subscriber, reassign=None, force=True)


def test_delete_fires_action(mapper_for, users, hooks):
    calls = []
    hooks.add_action("delete_user", lambda user_id, reassign: calls.append((user_id, reassign)))
    mapper_for(users.admin).delete(users.author, reassign=str(users.author2))
    assert calls == [(users.author, users.author2)]


# ─────────────────────────────────────────────────────────────────────────────
# Current user
# ─────────────────────────────────────────────────────────────────────────────

def test_current_user_requires_login(mapper_for, users):
    with pytest.raises(UnauthorizedError) as exc_info:
        mapper_for(0).get_current_user()
    assert exc_info.value.code == "json_not_logged_in"
    assert exc_info.value.status == 401


def test_current_user_redirects_to_own_resource(mapper_for, users):
    response = mapper_for(users.subscriber).get_current_user()
    assert response.status == 302
    assert response.headers["Location"] == f"http://localhost/api/users/{users.subscriber}"
    assert response.data["id"] == users.subscriber
    assert "email" not in response.data


# ─────────────────────────────────────────────────────────────────────────────
# Backend errors outside insert/update
# ─────────────────────────────────────────────────────────────────────────────

def test_backend_validation_error_on_update_keeps_code(mapper_for, users, backend, monkeypatch):
    monkeypatch.setattr(
        backend, "update", MagicMock(side_effect=BackendValidationError("invalid_email", "bad email"))
    )
    with pytest.raises(ValidationError) as exc_info:
        mapper_for(users.admin).update(users.author, {"email": "x@example.com"})
    assert exc_info.value.code == "invalid_email"
    assert exc_info.value.status == 400
