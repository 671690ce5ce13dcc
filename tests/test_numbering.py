from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from sqlalchemy.orm import sessionmaker

from modules.order.models import OrderSequence
from modules.order.numbering import format_order_number, numbering_service


def test_format():
    assert format_order_number(2026, 7) == "ORD-2026-00007"
    assert format_order_number(2026, 123456) == "ORD-2026-123456"


def test_sequential_within_year(db):
    at = datetime(2026, 3, 1)
    numbers = [numbering_service.next_order_number(db, at) for _ in range(3)]
    assert numbers == ["ORD-2026-00001", "ORD-2026-00002", "ORD-2026-00003"]


def test_each_year_restarts_at_one(db):
    assert numbering_service.next_order_number(db, datetime(2025, 12, 31)) == "ORD-2025-00001"
    assert numbering_service.next_order_number(db, datetime(2025, 12, 31)) == "ORD-2025-00002"
    assert numbering_service.next_order_number(db, datetime(2026, 1, 1)) == "ORD-2026-00001"
    assert numbering_service.next_order_number(db, datetime(2025, 12, 31)) == "ORD-2025-00003"

    rows = {r.year: r.last_value for r in db.query(OrderSequence).all()}
    assert rows == {2025: 3, 2026: 1}


def test_existing_counter_row_is_continued(db):
    db.add(OrderSequence(year=2026, last_value=41))
    db.flush()
    assert numbering_service.next_sequence(db, 2026) == 42


def test_concurrent_sessions_get_distinct_numbers(make_file_engine):
    engine = make_file_engine(begin="BEGIN IMMEDIATE")
    Session = sessionmaker(bind=engine, autoflush=False)
    at = datetime(2026, 6, 15)

    def issue(_):
        db = Session()
        try:
            number = numbering_service.next_order_number(db, at)
            db.commit()
            return number
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(issue, range(40)))

    assert len(set(numbers)) == 40
    assert sorted(int(n.rsplit("-", 1)[1]) for n in numbers) == list(range(1, 41))
