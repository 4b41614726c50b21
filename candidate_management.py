from __future__ import annotations  # Candidate storage helpers

import sqlite3
from pathlib import Path
from typing import Iterable, List, Literal, Optional

from agents.types import Answer, Candidate, CandidateStatus, ChatTurn, Question, utc_now
from config.settings import settings

SortKey = Literal["score", "date", "name"]

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS candidates (
        candidate_id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        email TEXT NOT NULL DEFAULT '',
        phone TEXT NOT NULL DEFAULT '',
        current_question_index INTEGER NOT NULL DEFAULT 0,
        total_score INTEGER NOT NULL DEFAULT 0,
        final_score INTEGER,
        status TEXT NOT NULL DEFAULT 'incomplete',
        started_at TEXT,
        completed_at TEXT,
        summary TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS candidate_questions (
        candidate_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        question_id TEXT NOT NULL,
        text TEXT NOT NULL,
        difficulty TEXT NOT NULL,
        time_limit INTEGER NOT NULL,
        PRIMARY KEY(candidate_id, position),
        FOREIGN KEY(candidate_id) REFERENCES candidates(candidate_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS candidate_answers (
        candidate_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        question_id TEXT NOT NULL,
        question_text TEXT NOT NULL,
        answer_text TEXT NOT NULL,
        difficulty TEXT NOT NULL,
        score INTEGER NOT NULL,
        time_spent_seconds INTEGER NOT NULL,
        feedback TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY(candidate_id, position),
        FOREIGN KEY(candidate_id) REFERENCES candidates(candidate_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_turns (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        candidate_id TEXT NOT NULL,
        origin TEXT NOT NULL,
        text TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        FOREIGN KEY(candidate_id) REFERENCES candidates(candidate_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS app_state (
        key TEXT PRIMARY KEY,
        value TEXT
    )
    """,
)

ACTIVE_KEY = "active_candidate_id"


class CandidateNotFoundError(KeyError):  # Raised when a candidate id is unknown
    pass


class AnswerConflictError(ValueError):  # Raised when an answer would break positional order
    pass


class CandidateStore:  # SQLite-backed candidate storage
    def __init__(self, path: Optional[Path] = None) -> None:  # Initialize store and schema
        self._path = Path(path or settings.DB_PATH)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:  # Create SQLite connection
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:  # Ensure candidate tables exist
        conn = self._connect()
        try:
            for stmt in SCHEMA:
                conn.execute(stmt)
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def create_candidate(self, *, name: str = "", email: str = "", phone: str = "") -> Candidate:  # Persist a new candidate
        candidate = Candidate(name=name.strip(), email=email.strip(), phone=phone.strip())
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO candidates (candidate_id, name, email, phone, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (candidate.id, candidate.name, candidate.email, candidate.phone, candidate.status, utc_now()),
            )
            conn.commit()
        finally:
            conn.close()
        return candidate

    def update_candidate_fields(self, candidate_id: str, **fields: str) -> None:  # Fill profile fields
        allowed = {key: value for key, value in fields.items() if key in {"name", "email", "phone"}}
        if not allowed:
            return
        assignments = ", ".join(f"{key} = ?" for key in allowed)
        self._execute_for(
            candidate_id,
            f"UPDATE candidates SET {assignments} WHERE candidate_id = ?",
            (*allowed.values(), candidate_id),
        )

    def record_question_set(self, candidate_id: str, questions: Iterable[Question], *, started_at: Optional[str] = None) -> None:  # Store the ordered question set
        conn = self._connect()
        try:
            self._require(conn, candidate_id)
            conn.execute("DELETE FROM candidate_questions WHERE candidate_id = ?", (candidate_id,))
            conn.executemany(
                """
                INSERT INTO candidate_questions (candidate_id, position, question_id, text, difficulty, time_limit)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (candidate_id, position, q.id, q.text, q.difficulty, q.time_limit)
                    for position, q in enumerate(questions)
                ],
            )
            conn.execute(
                "UPDATE candidates SET started_at = ?, current_question_index = 0 WHERE candidate_id = ?",
                (started_at or utc_now(), candidate_id),
            )
            conn.commit()
        finally:
            conn.close()

    def record_answer(self, candidate_id: str, position: int, answer: Answer) -> None:  # Append the answer for ``position``
        conn = self._connect()
        try:
            self._require(conn, candidate_id)
            count = conn.execute(
                "SELECT COUNT(*) FROM candidate_answers WHERE candidate_id = ?", (candidate_id,)
            ).fetchone()[0]
            if position != count:
                raise AnswerConflictError(f"answer position {position} out of order (have {count})")
            question = conn.execute(
                "SELECT question_id FROM candidate_questions WHERE candidate_id = ? AND position = ?",
                (candidate_id, position),
            ).fetchone()
            if question is None or question["question_id"] != answer.question_id:
                raise AnswerConflictError(f"answer does not match question at position {position}")
            conn.execute(
                """
                INSERT INTO candidate_answers
                    (candidate_id, position, question_id, question_text, answer_text, difficulty,
                     score, time_spent_seconds, feedback, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    candidate_id,
                    position,
                    answer.question_id,
                    answer.question_text,
                    answer.answer_text,
                    answer.difficulty,
                    answer.score,
                    answer.time_spent_seconds,
                    answer.feedback,
                    utc_now(),
                ),
            )
            conn.execute(
                """
                UPDATE candidates
                SET total_score = total_score + ?, current_question_index = ?
                WHERE candidate_id = ?
                """,
                (answer.score, position + 1, candidate_id),
            )
            conn.commit()
        finally:
            conn.close()

    def correct_answer_score(self, candidate_id: str, position: int, score: int, feedback: str) -> None:  # Swap a recorded score, keeping total_score in step
        conn = self._connect()
        try:
            self._require(conn, candidate_id)
            row = conn.execute(
                "SELECT score FROM candidate_answers WHERE candidate_id = ? AND position = ?",
                (candidate_id, position),
            ).fetchone()
            if row is None:
                raise AnswerConflictError(f"no answer recorded at position {position}")
            conn.execute(
                "UPDATE candidate_answers SET score = ?, feedback = ? WHERE candidate_id = ? AND position = ?",
                (score, feedback, candidate_id, position),
            )
            conn.execute(
                "UPDATE candidates SET total_score = total_score + ? WHERE candidate_id = ?",
                (score - row["score"], candidate_id),
            )
            conn.commit()
        finally:
            conn.close()

    def set_status(self, candidate_id: str, status: CandidateStatus, *, completed_at: Optional[str] = None) -> None:
        self._execute_for(
            candidate_id,
            "UPDATE candidates SET status = ?, completed_at = COALESCE(?, completed_at) WHERE candidate_id = ?",
            (status, completed_at, candidate_id),
        )

    def set_summary(self, candidate_id: str, summary: str, *, final_score: Optional[int] = None) -> None:
        self._execute_for(
            candidate_id,
            "UPDATE candidates SET summary = ?, final_score = COALESCE(?, final_score) WHERE candidate_id = ?",
            (summary, final_score, candidate_id),
        )

    def append_chat_turn(self, candidate_id: str, turn: ChatTurn) -> None:
        self._execute_for(
            candidate_id,
            "INSERT INTO chat_turns (candidate_id, origin, text, timestamp) VALUES (?, ?, ?, ?)",
            (candidate_id, turn.origin, turn.text, turn.timestamp),
        )

    def set_active_candidate(self, candidate_id: Optional[str]) -> None:
        conn = self._connect()
        try:
            if candidate_id is not None:
                self._require(conn, candidate_id)
            conn.execute(
                "INSERT INTO app_state (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (ACTIVE_KEY, candidate_id),
            )
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_candidate(self, candidate_id: str) -> Candidate:
        conn = self._connect()
        try:
            row = self._require(conn, candidate_id)
            return self._hydrate(conn, row)
        finally:
            conn.close()

    def get_active_candidate(self) -> Optional[Candidate]:
        conn = self._connect()
        try:
            state = conn.execute("SELECT value FROM app_state WHERE key = ?", (ACTIVE_KEY,)).fetchone()
            if state is None or state["value"] is None:
                return None
            row = conn.execute("SELECT * FROM candidates WHERE candidate_id = ?", (state["value"],)).fetchone()
            return self._hydrate(conn, row) if row is not None else None
        finally:
            conn.close()

    def list_candidates(self, query: str = "", sort_by: SortKey = "score") -> List[Candidate]:  # Dashboard listing
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM candidates").fetchall()
            candidates = [self._hydrate(conn, row) for row in rows]
        finally:
            conn.close()

        needle = query.strip().lower()
        if needle:
            candidates = [
                c for c in candidates
                if needle in c.name.lower() or needle in c.email.lower() or needle in c.summary.lower()
            ]
        if sort_by == "score":
            candidates.sort(key=lambda c: c.total_score, reverse=True)
        elif sort_by == "date":
            candidates.sort(key=lambda c: c.started_at or "", reverse=True)
        else:
            candidates.sort(key=lambda c: c.name.lower())
        return candidates

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require(self, conn: sqlite3.Connection, candidate_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM candidates WHERE candidate_id = ?", (candidate_id,)).fetchone()
        if row is None:
            raise CandidateNotFoundError(candidate_id)
        return row

    def _execute_for(self, candidate_id: str, sql: str, params: tuple) -> None:
        conn = self._connect()
        try:
            self._require(conn, candidate_id)
            conn.execute(sql, params)
            conn.commit()
        finally:
            conn.close()

    def _hydrate(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Candidate:
        candidate_id = row["candidate_id"]
        questions = [
            Question(id=q["question_id"], text=q["text"], difficulty=q["difficulty"], time_limit=q["time_limit"])
            for q in conn.execute(
                "SELECT * FROM candidate_questions WHERE candidate_id = ? ORDER BY position", (candidate_id,)
            )
        ]
        answers = [
            Answer(
                question_id=a["question_id"],
                question_text=a["question_text"],
                answer_text=a["answer_text"],
                difficulty=a["difficulty"],
                score=a["score"],
                time_spent_seconds=a["time_spent_seconds"],
                feedback=a["feedback"],
            )
            for a in conn.execute(
                "SELECT * FROM candidate_answers WHERE candidate_id = ? ORDER BY position", (candidate_id,)
            )
        ]
        chat = [
            ChatTurn(origin=t["origin"], text=t["text"], timestamp=t["timestamp"])
            for t in conn.execute("SELECT * FROM chat_turns WHERE candidate_id = ? ORDER BY id", (candidate_id,))
        ]
        return Candidate(
            id=candidate_id,
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            questions=questions,
            answers=answers,
            current_question_index=row["current_question_index"],
            total_score=row["total_score"],
            final_score=row["final_score"],
            status=row["status"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            summary=row["summary"],
            chat=chat,
        )


__all__ = ["AnswerConflictError", "CandidateNotFoundError", "CandidateStore", "SortKey"]
