import unittest
from unittest.mock import MagicMock

from taskboard.db import DuplicateProfile, InMemoryDbClient, ProfileRecord
from taskboard.errors import DataStoreError
from taskboard.identity import Identity
from taskboard.repositories import ProfileRepository, TaskRepository, cache_bust


class CacheBustTests(unittest.TestCase):
    def test_appends_query(self):
        self.assertEqual(cache_bust("https://x.test/a.png", 7), "https://x.test/a.png?t=7")

    def test_extends_existing_query(self):
        self.assertEqual(
            cache_bust("https://x.test/a.png?w=64", 7), "https://x.test/a.png?w=64&t=7"
        )

    def test_no_url(self):
        self.assertIsNone(cache_bust(None, 7))
        self.assertIsNone(cache_bust("", 7))


class TaskRepositoryTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.alice = TaskRepository(self.db, Identity(id="alice"))
        self.bob = TaskRepository(self.db, Identity(id="bob"))

    def test_create_binds_owner_and_default_priority(self):
        task = self.alice.create("write report", due_date="")
        self.assertEqual(task.user_id, "alice")
        self.assertEqual(task.priority, "medium")
        self.assertIsNone(task.due_date)

    def test_owner_scoping(self):
        task = self.alice.create("mine")
        self.assertIsNone(self.bob.get(task.id))
        self.assertIsNone(self.bob.update(task.id, {"title": "theirs"}))
        self.assertFalse(self.bob.delete(task.id))
        self.assertEqual(self.bob.list_all(), [])
        self.assertEqual(self.alice.get(task.id).title, "mine")

    def test_update_drops_fields_outside_allow_list(self):
        task = self.alice.create("mine")
        before = task.updated_at
        updated = self.alice.update(
            task.id, {"user_id": "bob", "id": "x", "created_at": "never", "title": "new"}
        )
        self.assertEqual(updated.user_id, "alice")
        self.assertEqual(updated.id, task.id)
        self.assertNotEqual(updated.created_at, "never")
        self.assertEqual(updated.title, "new")
        self.assertGreaterEqual(updated.updated_at, before)

    def test_update_always_stamps_updated_at(self):
        db = MagicMock()
        repo = TaskRepository(db, Identity(id="alice"))
        repo.update("t1", {"nonsense": True})
        owner, task_id, updates = db.update_task.call_args.args
        self.assertEqual((owner, task_id), ("alice", "t1"))
        self.assertEqual(list(updates), ["updated_at"])


class ProfileRepositoryTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.identity = Identity(id="u1", email="a@x.com")
        self.profiles = ProfileRepository(self.db, self.identity, clock=lambda: 99)

    def test_ensure_is_idempotent(self):
        self.profiles.ensure()
        self.profiles.ensure()
        self.assertEqual(list(self.db.profiles), ["u1"])
        self.assertEqual(self.db.profiles["u1"].email, "a@x.com")

    def test_ensure_tolerates_concurrent_insert(self):
        db = MagicMock()
        db.get_profile.return_value = None
        db.insert_profile.side_effect = DuplicateProfile("exists", code="23505")
        ProfileRepository(db, self.identity).ensure()
        db.insert_profile.assert_called_once_with("u1", "a@x.com")

    def test_ensure_propagates_other_store_errors(self):
        db = MagicMock()
        db.get_profile.return_value = None
        db.insert_profile.side_effect = DataStoreError("insert profile: timeout")
        with self.assertRaises(DataStoreError):
            ProfileRepository(db, self.identity).ensure()

    def test_get_cache_busts_avatar_without_storing_it(self):
        self.profiles.ensure()
        self.profiles.set_avatar_url("https://x.test/u1/1.png")
        self.assertEqual(self.profiles.get().avatar_url, "https://x.test/u1/1.png?t=99")
        self.assertEqual(self.db.profiles["u1"].avatar_url, "https://x.test/u1/1.png")

    def test_get_without_avatar(self):
        self.profiles.ensure()
        self.assertIsNone(self.profiles.get().avatar_url)

    def test_get_missing_profile_is_store_error(self):
        with self.assertRaises(DataStoreError):
            self.profiles.get()

    def test_update_only_writes_editable_fields(self):
        self.db.profiles["u1"] = ProfileRecord(id="u1", email="a@x.com")
        self.profiles.update({"bio": "hello", "email": "x@y.z", "avatar_url": "evil"})
        profile = self.db.profiles["u1"]
        self.assertEqual(profile.bio, "hello")
        self.assertEqual(profile.email, "a@x.com")
        self.assertIsNone(profile.avatar_url)

    def test_empty_update_skips_store(self):
        db = MagicMock()
        ProfileRepository(db, self.identity).update({"email": "x@y.z"})
        db.update_profile.assert_not_called()


if __name__ == "__main__":
    unittest.main()
