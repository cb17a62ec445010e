from models import Comment


async def new_entry(client, headers) -> int:
    resp = await client.post(
        "/api/logbook/entries",
        data={"entry_datetime": "2026-10-19T07:00:00", "message": "Transformer oil level low"},
        headers=headers,
    )
    return resp.json()["log_id"]


async def add_comment(client, headers, log_id, text="Scheduled top-up") -> int:
    resp = await client.post(
        f"/api/logbook/entries/{log_id}/comments", json={"comment_text": text}, headers=headers
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["comment_id"]


async def test_engineer_comments_and_everyone_in_scope_reads(client, seed, auth):
    log_id = await new_entry(client, auth.station_a)
    await add_comment(client, auth.eng_a, log_id)

    resp = await client.get(f"/api/logbook/entries/{log_id}/comments", headers=auth.station_a)
    comments = resp.json()["comments"]
    assert len(comments) == 1
    assert comments[0]["comment_text"] == "Scheduled top-up"
    assert comments[0]["full_name"] == "Asha Engineer"
    assert comments[0]["role"] == "engineer"

    listed = await client.get(f"/api/logbook/entries/{log_id}", headers=auth.eng_a)
    assert listed.json()["entry"]["comment_count"] == 1


async def test_only_engineers_may_comment(client, seed, auth):
    log_id = await new_entry(client, auth.station_a)
    for headers in (auth.station_a, auth.admin):
        resp = await client.post(
            f"/api/logbook/entries/{log_id}/comments", json={"comment_text": "hi"}, headers=headers
        )
        assert resp.status_code == 403


async def test_engineer_cannot_comment_on_other_substation(client, seed, auth):
    log_id = await new_entry(client, auth.eng_b)
    resp = await client.post(
        f"/api/logbook/entries/{log_id}/comments", json={"comment_text": "hi"}, headers=auth.eng_a
    )
    assert resp.status_code == 404


async def test_empty_comment_is_rejected(client, seed, auth):
    log_id = await new_entry(client, auth.eng_a)
    resp = await client.post(
        f"/api/logbook/entries/{log_id}/comments", json={"comment_text": "  "}, headers=auth.eng_a
    )
    assert resp.status_code == 400


async def test_non_author_cannot_edit_and_text_is_unchanged(client, seed, auth, session_factory):
    # Second engineer on the same substation
    from core.security import EngineerPrincipal, hash_password, issue_token
    from models import User, UserRole

    async with session_factory() as s:
        other = User(
            username="eng_a2", password_hash=hash_password("x"), full_name="Second Engineer",
            email="eng.a2@grid.test", role=UserRole.engineer, substation_id=seed.sub_a,
        )
        s.add(other)
        await s.commit()
        other_headers = {"Authorization": "Bearer " + issue_token(
            EngineerPrincipal(id=other.id, username="eng_a2", substation_id=seed.sub_a)
        )}

    log_id = await new_entry(client, auth.eng_a)
    comment_id = await add_comment(client, auth.eng_a, log_id, text="Author text")

    resp = await client.put(
        f"/api/logbook/comments/{comment_id}", json={"comment_text": "Hijacked"}, headers=other_headers
    )
    assert resp.status_code == 403
    assert resp.json()["message"] == "You can only edit your own comments"

    resp = await client.delete(f"/api/logbook/comments/{comment_id}", headers=other_headers)
    assert resp.status_code == 403

    async with session_factory() as s:
        comment = await s.get(Comment, comment_id)
        assert comment.comment_text == "Author text"
        assert comment.is_edited is False
        assert comment.is_deleted is False


async def test_author_edits_and_soft_deletes(client, seed, auth, session_factory):
    log_id = await new_entry(client, auth.eng_a)
    comment_id = await add_comment(client, auth.eng_a, log_id)

    resp = await client.put(
        f"/api/logbook/comments/{comment_id}", json={"comment_text": "Topped up"}, headers=auth.eng_a
    )
    assert resp.status_code == 200

    resp = await client.delete(f"/api/logbook/comments/{comment_id}", headers=auth.eng_a)
    assert resp.status_code == 200

    resp = await client.get(f"/api/logbook/entries/{log_id}/comments", headers=auth.eng_a)
    assert resp.json()["comments"] == []

    async with session_factory() as s:
        comment = await s.get(Comment, comment_id)
        assert comment.comment_text == "Topped up"
        assert comment.is_edited is True
        assert comment.is_deleted is True

    resp = await client.put(
        f"/api/logbook/comments/{comment_id}", json={"comment_text": "Again"}, headers=auth.eng_a
    )
    assert resp.status_code == 404
