"""Read-state endpoints."""

from tests.fixtures import create_test_topic, headers, post_entry, post_reply


async def entry_states(client, topic_id, user_id, entry_ids):
    resp = await client.get(
        f"/api/topics/{topic_id}/entry_list",
        params=[("ids[]", eid) for eid in entry_ids],
        headers=headers(user_id),
    )
    return {i["id"]: i["read_state"] for i in resp.json()["items"]}


class TestMarkEntry:
    async def test_mark_and_unmark(self, client):
        topic = await create_test_topic(client)
        topic_id = topic["topic_id"]
        a = await post_entry(client, topic_id, "a")

        resp = await client.put(f"/api/topics/{topic_id}/entries/{a['id']}/read", headers=headers("u2"))
        assert resp.status_code == 204
        assert await entry_states(client, topic_id, "u2", [a["id"]]) == {a["id"]: "read"}

        resp = await client.delete(f"/api/topics/{topic_id}/entries/{a['id']}/read", headers=headers("u2"))
        assert resp.status_code == 204
        assert await entry_states(client, topic_id, "u2", [a["id"]]) == {a["id"]: "unread"}

    async def test_unknown_entry(self, client):
        topic = await create_test_topic(client)
        resp = await client.put(f"/api/topics/{topic['topic_id']}/entries/nope/read", headers=headers("u2"))
        assert resp.status_code == 404

    async def test_entry_of_other_topic(self, client):
        first = await create_test_topic(client)
        second = await create_test_topic(client)
        a = await post_entry(client, first["topic_id"], "a")
        resp = await client.put(
            f"/api/topics/{second['topic_id']}/entries/{a['id']}/read", headers=headers("u2"),
        )
        assert resp.status_code == 404


class TestMarkAll:
    async def test_mark_all_then_new_entry(self, client):
        topic = await create_test_topic(client)
        topic_id = topic["topic_id"]
        a = await post_entry(client, topic_id, "a")
        c = await post_reply(client, topic_id, a["id"], "c")

        resp = await client.put(f"/api/topics/{topic_id}/read_all", headers=headers("u2"))
        assert resp.status_code == 204
        d = await post_entry(client, topic_id, "d")

        states = await entry_states(client, topic_id, "u2", [a["id"], c["id"], d["id"]])
        assert states == {a["id"]: "read", c["id"]: "read", d["id"]: "unread"}

    async def test_mark_all_unread(self, client):
        topic = await create_test_topic(client)
        topic_id = topic["topic_id"]
        a = await post_entry(client, topic_id, "a")
        await client.put(f"/api/topics/{topic_id}/read_all", headers=headers("u2"))

        resp = await client.delete(f"/api/topics/{topic_id}/read_all", headers=headers("u2"))
        assert resp.status_code == 204
        assert await entry_states(client, topic_id, "u2", [a["id"]]) == {a["id"]: "unread"}
        topic = (await client.get(f"/api/topics/{topic_id}", headers=headers("u2"))).json()
        assert topic["read_state"] == "unread"

    async def test_unknown_topic(self, client):
        resp = await client.put("/api/topics/nope/read_all", headers=headers("u2"))
        assert resp.status_code == 404


class TestMarkTopic:
    async def test_marker_toggles(self, client):
        topic = await create_test_topic(client)
        topic_id = topic["topic_id"]

        await client.put(f"/api/topics/{topic_id}/read", headers=headers("u2"))
        assert (await client.get(f"/api/topics/{topic_id}", headers=headers("u2"))).json()["read_state"] == "read"

        await client.delete(f"/api/topics/{topic_id}/read", headers=headers("u2"))
        assert (await client.get(f"/api/topics/{topic_id}", headers=headers("u2"))).json()["read_state"] == "unread"

    async def test_allowed_before_initial_post(self, client):
        topic = await create_test_topic(client, require_initial_post=True)
        resp = await client.put(f"/api/topics/{topic['topic_id']}/read", headers=headers("u2"))
        assert resp.status_code == 204

        resp = await client.put(f"/api/topics/{topic['topic_id']}/read_all", headers=headers("u2"))
        assert resp.status_code == 403
