"""Entry attachments: upload, quota, storage failures, download."""

from threadline.attachments.store import QUOTA_EXEMPT_BYTES, AttachmentStorageError
from tests.fixtures import create_test_topic, headers


async def post_with_file(client, topic_id, data, user_id="u1", filename="notes.txt"):
    return await client.post(
        f"/api/topics/{topic_id}/entries",
        data={"message": "see attached"},
        files={"attachment": (filename, data, "text/plain")},
        headers=headers(user_id),
    )


class TestUpload:
    async def test_upload_and_download(self, client):
        topic = await create_test_topic(client)
        resp = await post_with_file(client, topic["topic_id"], b"hello file")
        assert resp.status_code == 201
        attachment = resp.json()["attachment"]
        assert attachment["filename"] == "notes.txt"
        assert attachment["size"] == len(b"hello file")
        assert "attachment_error" not in resp.json()

        download = await client.get(attachment["url"])
        assert download.status_code == 200
        assert download.content == b"hello file"
        assert download.headers["content-type"].startswith("text/plain")

    async def test_attachment_in_listing(self, client):
        topic = await create_test_topic(client)
        await post_with_file(client, topic["topic_id"], b"abc")
        items = (await client.get(
            f"/api/topics/{topic['topic_id']}/entries", headers=headers("u1"),
        )).json()["items"]
        assert items[0]["attachment"]["display_name"] == "notes.txt"

    async def test_unknown_attachment(self, client):
        resp = await client.get("/api/attachments/nope")
        assert resp.status_code == 404


class TestQuota:
    async def test_over_quota_rejected(self, client, settings):
        topic = await create_test_topic(client)
        big = b"x" * (settings.attachment_quota_bytes // 2 + 1)
        assert (await post_with_file(client, topic["topic_id"], big)).status_code == 201

        resp = await post_with_file(client, topic["topic_id"], big)
        assert resp.status_code == 400
        assert "attachment" in resp.json()["errors"]

        listing = (await client.get(
            f"/api/topics/{topic['topic_id']}/entries", headers=headers("u1"),
        )).json()
        assert len(listing["items"]) == 1

    async def test_small_files_are_exempt(self, client, settings):
        topic = await create_test_topic(client)
        big = b"x" * settings.attachment_quota_bytes
        assert (await post_with_file(client, topic["topic_id"], big)).status_code == 201

        resp = await post_with_file(client, topic["topic_id"], b"y" * QUOTA_EXEMPT_BYTES)
        assert resp.status_code == 201

    async def test_quota_is_per_user(self, client, settings):
        topic = await create_test_topic(client)
        big = b"x" * settings.attachment_quota_bytes
        assert (await post_with_file(client, topic["topic_id"], big, user_id="u1")).status_code == 201
        assert (await post_with_file(client, topic["topic_id"], big, user_id="u2")).status_code == 201


class TestStorageFailure:
    async def test_entry_kept_with_error(self, client, services, monkeypatch):
        async def failing_save(topic_id, user_id, filename, content_type, data):
            raise AttachmentStorageError(filename, "disk full")

        monkeypatch.setattr(services.attachments, "save", failing_save)
        topic = await create_test_topic(client)

        resp = await post_with_file(client, topic["topic_id"], b"data")
        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "see attached"
        assert "attachment" not in body
        assert "disk full" in body["attachment_error"]
