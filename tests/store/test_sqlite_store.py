import asyncio
import sqlite3

from chat_session_manager.errors import SessionNotFoundError
from chat_session_manager.models import PENDING, Message, Resolved, Sender, Session
from chat_session_manager.store import ChatStore, SqliteChatStore
from tests.store.base import ChatStoreTestCase


class SqliteChatStoreTests(ChatStoreTestCase):
    def _session(self, user_id: str = "u1", **kwargs) -> Session:
        session = Session(user_id=user_id, model_id="m1", **kwargs)
        asyncio.run(self._store.insert_session(session))
        return session

    def test_satisfies_chat_store_protocol(self) -> None:
        self.assertIsInstance(self._store, ChatStore)

    def test_list_sessions_is_scoped_to_user_in_creation_order(self) -> None:
        first = self._session(name="First")
        self._session(user_id="someone-else")
        second = self._session(name="Second")

        sessions = asyncio.run(self._store.list_sessions("u1"))

        self.assertEqual([first.id, second.id], [s.id for s in sessions])
        self.assertEqual(["First", "Second"], [s.name for s in sessions])
        self.assertTrue(all(s.messages == [] for s in sessions))
        self.assertFalse(any(s.messages_loaded for s in sessions))

    def test_insert_message_assigns_order_and_keeps_pending_tokens(self) -> None:
        session = self._session()
        prompt = Message(session.id, "u1", Sender.USER, "hello")
        reply = Message(session.id, "u1", Sender.ASSISTANT, "hi there", tokens=Resolved(4))

        async def scenario() -> list[Message]:
            await self._store.insert_message(prompt)
            await self._store.insert_message(reply)
            return await self._store.list_messages(session.id, "u1")

        messages = asyncio.run(scenario())

        self.assertEqual([prompt, reply], messages)
        self.assertEqual(PENDING, messages[0].tokens)
        self.assertEqual(Resolved(4), messages[1].tokens)
        seqs = [row["seq"] for row in self._store.execute("SELECT seq FROM messages ORDER BY seq").fetchall()]
        self.assertEqual([1, 2], seqs)

    def test_list_messages_requires_matching_owner(self) -> None:
        session = self._session()
        asyncio.run(self._store.insert_message(Message(session.id, "u1", Sender.USER, "mine")))

        self.assertEqual([], asyncio.run(self._store.list_messages(session.id, "intruder")))

    def test_update_session_persists_fields(self) -> None:
        session = self._session()
        session.name = "Renamed"
        session.model_id = "m2"
        asyncio.run(self._store.update_session(session))

        reloaded = asyncio.run(self._store.list_sessions("u1"))[0]
        self.assertEqual("Renamed", reloaded.name)
        self.assertEqual("m2", reloaded.model_id)

    def test_update_missing_session_raises(self) -> None:
        with self.assertRaises(SessionNotFoundError):
            asyncio.run(self._store.update_session(Session(user_id="u1", model_id="m1")))

    def test_upsert_batch_updates_prompt_and_appends_completion(self) -> None:
        session = self._session()
        prompt = Message(session.id, "u1", Sender.USER, "question")
        asyncio.run(self._store.insert_message(prompt))

        resolved_prompt = prompt.with_tokens(7)
        completion = Message(session.id, "u1", Sender.ASSISTANT, "answer", tokens=Resolved(3))
        session.tokens_used = 10
        asyncio.run(self._store.upsert_batch(resolved_prompt, completion, session))

        messages = asyncio.run(self._store.list_messages(session.id, "u1"))
        self.assertEqual([Resolved(7), Resolved(3)], [m.tokens for m in messages])
        self.assertEqual(["question", "answer"], [m.text for m in messages])
        self.assertEqual(10, asyncio.run(self._store.list_sessions("u1"))[0].tokens_used)

    def test_upsert_batch_is_atomic(self) -> None:
        session = self._session()
        prompt = Message(session.id, "u1", Sender.USER, "question")
        asyncio.run(self._store.insert_message(prompt))

        # A completion pointing at a session that does not exist violates the foreign key.
        orphan = Message("missing-session", "u1", Sender.ASSISTANT, "answer", tokens=Resolved(3))
        with self.assertRaises(sqlite3.IntegrityError):
            asyncio.run(self._store.upsert_batch(prompt.with_tokens(7), orphan, session))

        messages = asyncio.run(self._store.list_messages(session.id, "u1"))
        self.assertEqual([PENDING], [m.tokens for m in messages])

    def test_delete_session_and_messages_removes_both(self) -> None:
        session = self._session()
        keep = self._session()
        asyncio.run(self._store.insert_message(Message(session.id, "u1", Sender.USER, "bye")))
        asyncio.run(self._store.insert_message(Message(keep.id, "u1", Sender.USER, "stay")))

        asyncio.run(self._store.delete_session_and_messages(session.id))

        self.assertEqual([keep.id], [s.id for s in asyncio.run(self._store.list_sessions("u1"))])
        row = self._store.execute("SELECT COUNT(*) AS c FROM messages WHERE session_id = ?", (session.id,)).fetchone()
        self.assertEqual(0, int(row["c"]))
        self.assertEqual(1, len(asyncio.run(self._store.list_messages(keep.id, "u1"))))

    def test_delete_session_and_messages_is_atomic(self) -> None:
        session = self._session()
        asyncio.run(self._store.insert_message(Message(session.id, "u1", Sender.USER, "still here")))
        self._store.execute(
            "CREATE TRIGGER block_session_delete BEFORE DELETE ON sessions "
            "BEGIN SELECT RAISE(ABORT, 'session delete blocked'); END"
        )

        with self.assertRaises(sqlite3.DatabaseError):
            asyncio.run(self._store.delete_session_and_messages(session.id))

        self.assertEqual([session.id], [s.id for s in asyncio.run(self._store.list_sessions("u1"))])
        self.assertEqual(["still here"], [m.text for m in asyncio.run(self._store.list_messages(session.id, "u1"))])

    def test_data_survives_reopen(self) -> None:
        session = self._session(name="Durable")
        asyncio.run(self._store.insert_message(Message(session.id, "u1", Sender.USER, "persist me")))
        self._store.close()

        self._store = SqliteChatStore(self._db_path)
        sessions = asyncio.run(self._store.list_sessions("u1"))
        self.assertEqual(["Durable"], [s.name for s in sessions])
        self.assertEqual(["persist me"], [m.text for m in asyncio.run(self._store.list_messages(session.id, "u1"))])
