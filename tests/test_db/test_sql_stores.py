"""Tests for the SQLite stores and database lifecycle."""

import threading
from datetime import date, timedelta

import pytest
from sqlalchemy import inspect

from bibliodesk.db.models import BookRecord, LoanRecord, MemberRecord
from bibliodesk.db.sqlite import Database
from bibliodesk.db.stores import SqlBookStore, SqlLoanStore, SqlMemberStore
from bibliodesk.lending.errors import BookUnavailable, LoanNotFound, StorageError
from bibliodesk.lending.manager import LendingManager
from bibliodesk.lending.schemas import Book, Loan


@pytest.fixture
def seeded(sql_books, sql_members):
    """Two books and one member in the database."""
    sql_books.add(Book(isbn="ISBN-1", title="Nedjma", author="Kateb Yacine", publication_year=1956))
    sql_books.add(Book(isbn="ISBN-2", title="La Boîte à merveilles", author="Ahmed Sefrioui"))
    member = sql_members.add("Salma", "Tazi", email="salma@example.com")
    return member


def make_loan(loan_id: str, isbn: str, member_id: int, returned_on=None) -> Loan:
    return Loan(
        id=loan_id,
        book_isbn=isbn,
        member_id=member_id,
        borrowed_on=date(2025, 2, 1),
        due_on=date(2025, 2, 16),
        returned_on=returned_on,
        penalty=0.0 if returned_on else None,
    )


class TestDatabase:
    """Tests for database initialization and lifecycle."""

    def test_creates_tables(self, db: Database):
        with db.get_session() as session:
            session.query(BookRecord).first()
            session.query(MemberRecord).first()
            session.query(LoanRecord).first()

    def test_file_database(self, temp_db_path):
        with Database(str(temp_db_path)) as database:
            database.create_tables()
            assert temp_db_path.exists()

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "library.db"
        database = Database(str(path))
        try:
            assert path.parent.exists()
        finally:
            database.close()

    def test_active_loan_index(self, db: Database):
        indexes = inspect(db.engine).get_indexes("loans")
        names = {i["name"]: i for i in indexes}
        assert names["ux_loans_active_book"]["unique"]

    def test_drop_tables(self, db: Database):
        db.drop_tables()
        assert inspect(db.engine).get_table_names() == []


class TestSqlBookStore:
    """Tests for SqlBookStore."""

    def test_add_and_find(self, sql_books, seeded):
        book = sql_books.find_by_id("ISBN-1")
        assert book.title == "Nedjma"
        assert book.publication_year == 1956
        assert book.available is True

    def test_find_missing(self, sql_books):
        assert sql_books.find_by_id("nope") is None

    def test_add_duplicate(self, sql_books, seeded):
        with pytest.raises(StorageError):
            sql_books.add(Book(isbn="ISBN-1", title="Dup", author="X"))

    def test_update_details(self, sql_books, seeded):
        book = sql_books.find_by_id("ISBN-2")
        sql_books.update(book.model_copy(update={"publication_year": 1954, "available": False}))

        stored = sql_books.find_by_id("ISBN-2")
        assert stored.publication_year == 1954
        assert stored.available is True

    def test_set_availability_is_conditional(self, sql_books, seeded):
        assert sql_books.set_availability("ISBN-2", False) is True
        assert sql_books.set_availability("ISBN-2", False) is False
        assert sql_books.find_by_id("ISBN-2").available is False
        assert sql_books.set_availability("ISBN-2", True) is True

    def test_set_availability_missing(self, sql_books):
        assert sql_books.set_availability("nope", True) is False

    def test_remove(self, sql_books, seeded):
        assert sql_books.remove("ISBN-2") is True
        assert sql_books.find_by_id("ISBN-2") is None
        assert sql_books.remove("ISBN-2") is False

    def test_remove_unavailable_refused(self, sql_books, seeded):
        sql_books.set_availability("ISBN-1", False)
        assert sql_books.remove("ISBN-1") is False
        assert sql_books.find_by_id("ISBN-1") is not None

    def test_update_missing(self, sql_books):
        with pytest.raises(StorageError):
            sql_books.update(Book(isbn="X", title="T", author="A"))

    def test_list(self, sql_books, seeded):
        sql_books.set_availability("ISBN-2", False)

        assert [b.isbn for b in sql_books.list_all()] == ["ISBN-2", "ISBN-1"]
        assert [b.isbn for b in sql_books.list_all(available_only=True)] == ["ISBN-1"]


class TestSqlMemberStore:
    """Tests for SqlMemberStore."""

    def test_add_assigns_id(self, sql_members):
        first = sql_members.add("A", "One")
        second = sql_members.add("B", "Two")
        assert first.id is not None
        assert second.id == first.id + 1
        assert first.active is True

    def test_set_active(self, sql_members, seeded):
        member = sql_members.set_active(seeded.id, False)
        assert member.active is False
        assert sql_members.find_by_id(seeded.id).active is False
        assert sql_members.list_all(active_only=True) == []
        assert len(sql_members.list_all()) == 1

    def test_set_active_missing(self, sql_members):
        assert sql_members.set_active(404, True) is None

    def test_update(self, sql_members, seeded):
        sql_members.update(seeded.model_copy(update={"first_name": "Salima", "email": None}))

        stored = sql_members.find_by_id(seeded.id)
        assert stored.full_name == "Salima Tazi"
        assert stored.email is None
        assert stored.active is True

    def test_update_missing(self, sql_members, seeded):
        with pytest.raises(StorageError):
            sql_members.update(seeded.model_copy(update={"id": 404}))


class TestSqlLoanStore:
    """Tests for SqlLoanStore."""

    def test_save_and_find(self, sql_loans, seeded):
        loan = make_loan("loan-1", "ISBN-1", seeded.id)
        sql_loans.save(loan)

        assert sql_loans.find_active_by_book("ISBN-1") == loan
        assert sql_loans.find_all() == [loan]
        assert sql_loans.count_active_for_member(seeded.id) == 1

    def test_second_active_loan_rejected_by_index(self, sql_loans, seeded):
        sql_loans.save(make_loan("loan-1", "ISBN-1", seeded.id))
        with pytest.raises(StorageError):
            sql_loans.save(make_loan("loan-2", "ISBN-1", seeded.id))

    def test_closed_loans_do_not_block_index(self, sql_loans, seeded):
        sql_loans.save(make_loan("loan-1", "ISBN-1", seeded.id, returned_on=date(2025, 2, 10)))
        sql_loans.save(make_loan("loan-2", "ISBN-1", seeded.id, returned_on=date(2025, 2, 12)))
        sql_loans.save(make_loan("loan-3", "ISBN-1", seeded.id))

        assert sql_loans.find_active_by_book("ISBN-1").id == "loan-3"

    def test_update_closes_loan(self, sql_loans, seeded):
        loan = make_loan("loan-1", "ISBN-1", seeded.id)
        sql_loans.save(loan)
        closed = loan.model_copy(update={"returned_on": date(2025, 2, 20), "penalty": 8.0})
        sql_loans.update(closed)

        assert sql_loans.find_active_by_book("ISBN-1") is None
        assert sql_loans.count_active_for_member(seeded.id) == 0
        assert sql_loans.find_by_member(seeded.id) == [closed]

    def test_update_missing(self, sql_loans):
        with pytest.raises(StorageError):
            sql_loans.update(make_loan("ghost", "ISBN-1", 1))

    def test_storage_failure_is_wrapped(self, sql_loans, db):
        db.drop_tables()
        with pytest.raises(StorageError) as exc_info:
            sql_loans.find_all()
        assert exc_info.value.__cause__ is not None


class TestLendingOverSql:
    """End-to-end lending against the SQLite stores."""

    @pytest.fixture
    def sql_manager(self, sql_books, sql_members, sql_loans, clock):
        return LendingManager(sql_books, sql_members, sql_loans, today=clock)

    def test_borrow_and_return(self, sql_manager, sql_books, sql_loans, seeded, clock):
        loan = sql_manager.borrow("ISBN-1", seeded.id)
        assert sql_books.find_by_id("ISBN-1").available is False
        assert sql_loans.find_active_by_book("ISBN-1") == loan

        clock.advance(20)
        closed = sql_manager.return_loan("ISBN-1", seeded.id)

        assert closed.penalty == 10
        assert sql_books.find_by_id("ISBN-1").available is True
        assert sql_loans.find_active_by_book("ISBN-1") is None

    def test_double_borrow_refused(self, sql_manager, sql_members, seeded):
        sql_manager.borrow("ISBN-1", seeded.id)
        other = sql_members.add("Omar", "Fassi")

        with pytest.raises(BookUnavailable):
            sql_manager.borrow("ISBN-1", other.id)

    def test_return_twice(self, sql_manager, seeded):
        sql_manager.borrow("ISBN-1", seeded.id)
        sql_manager.return_loan("ISBN-1", seeded.id)

        with pytest.raises(LoanNotFound):
            sql_manager.return_loan("ISBN-1", seeded.id)

    def test_list_overdue(self, sql_manager, seeded, clock):
        loan = sql_manager.borrow("ISBN-1", seeded.id)
        clock.advance(16)

        assert [l.id for l in sql_manager.list_overdue()] == [loan.id]
        assert sql_manager.list_overdue() == sql_manager.list_overdue()

    def test_due_date_persisted(self, sql_manager, sql_loans, seeded, start_date):
        sql_manager.borrow("ISBN-2", seeded.id)
        stored = sql_loans.find_active_by_book("ISBN-2")
        assert stored.due_on == start_date + timedelta(days=15)

    def test_remove_book_on_loan_refused(self, sql_manager, sql_books, seeded):
        sql_manager.borrow("ISBN-1", seeded.id)

        with pytest.raises(BookUnavailable):
            sql_manager.remove_book("ISBN-1")
        assert sql_books.find_by_id("ISBN-1") is not None


class TestSharedDatabaseFile:
    """Two engines, each with its own connection pool, on one database file."""

    @pytest.fixture
    def shared_path(self, temp_db_path):
        with Database(str(temp_db_path)) as database:
            database.create_tables()
            SqlBookStore(database).add(Book(isbn="ISBN-1", title="Nedjma", author="Kateb Yacine"))
            members = SqlMemberStore(database)
            members.add("Salma", "Tazi")
            members.add("Omar", "Fassi")
        return temp_db_path

    @pytest.fixture
    def open_databases(self):
        opened = []
        yield opened
        for database in opened:
            database.close()

    def make_engine(self, path, open_databases, clock, wrap=None):
        database = Database(str(path))
        open_databases.append(database)
        books = SqlBookStore(database)
        if wrap is not None:
            books = wrap(books)
        return LendingManager(books, SqlMemberStore(database), SqlLoanStore(database), today=clock)

    def assert_consistent(self, path, expected_member):
        with Database(str(path)) as database:
            book = SqlBookStore(database).find_by_id("ISBN-1")
            active = SqlLoanStore(database).find_active_by_book("ISBN-1")
        assert active is not None
        assert active.member_id == expected_member
        assert book.available is False

    def test_stale_read_is_refused(self, shared_path, open_databases, clock, hooked_book_store):
        first = self.make_engine(shared_path, open_databases, clock)
        second = self.make_engine(
            shared_path,
            open_databases,
            clock,
            wrap=lambda books: hooked_book_store(books, lambda: first.borrow("ISBN-1", 1)),
        )

        with pytest.raises(BookUnavailable):
            second.borrow("ISBN-1", 2)

        self.assert_consistent(shared_path, expected_member=1)

    def test_concurrent_borrow(self, shared_path, open_databases, clock, hooked_book_store):
        barrier = threading.Barrier(2, timeout=10)
        engines = [
            self.make_engine(
                shared_path,
                open_databases,
                clock,
                wrap=lambda books: hooked_book_store(books, barrier.wait),
            )
            for _ in range(2)
        ]
        successes = []
        failures = []

        def attempt(engine, member_id):
            try:
                successes.append(engine.borrow("ISBN-1", member_id))
            except BookUnavailable as e:
                failures.append(e)

        threads = [
            threading.Thread(target=attempt, args=(engine, member_id))
            for engine, member_id in zip(engines, [1, 2])
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successes) == 1
        assert len(failures) == 1
        self.assert_consistent(shared_path, expected_member=successes[0].member_id)
