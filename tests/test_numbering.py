import threading
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from albaran_api.db import Base, enable_sqlite_savepoints
from albaran_api.models.models import Client, DeliveryNote, DocumentCounter, Project
from albaran_api.schemas.delivery_notes import DeliveryNoteCreate
from albaran_api.services.delivery_notes import create_note
from albaran_api.services.numbering import compute_total, format_number, next_number, parse_sequence
from albaran_api.services.ownership import Principal, owner_snapshot

from conftest import make_company, make_user


def test_total_sums_hours_and_materials():
    worked = [{"person": "Luis", "hours": 8, "hourly_rate": 20}]
    materials = [{"name": "Tubo", "quantity": 5, "price": 10}]
    assert compute_total(worked, materials) == 210


def test_missing_rate_or_price_counts_as_zero():
    worked = [{"person": "Luis", "hours": 8}]
    materials = [{"name": "Tubo", "quantity": 5, "price": None}]
    assert compute_total(worked, materials) == 0
    assert compute_total(None, None) == 0


def test_number_format_and_parse():
    assert format_number(2026, 7) == "ALB-2026-0007"
    assert format_number(2026, 12345) == "ALB-2026-12345"
    assert parse_sequence("ALB-2026-0042") == 42
    assert parse_sequence("FAC-2026-0042") is None
    assert parse_sequence("garbage") is None
    assert parse_sequence(None) is None


def test_numbers_increase_without_collisions(db, principal):
    numbers = [next_number(db, principal, year=2026) for _ in range(5)]
    db.commit()
    assert numbers == [f"ALB-2026-{i:04d}" for i in range(1, 6)]
    assert len(set(numbers)) == 5


def test_counter_is_per_scope_and_year(db, member_a, member_b, user):
    company_a = Principal.for_user(member_a)
    company_b = Principal.for_user(member_b)
    solo = Principal.for_user(user)

    assert next_number(db, company_a, year=2026) == "ALB-2026-0001"
    # Same company, same sequence
    assert next_number(db, company_b, year=2026) == "ALB-2026-0002"
    assert next_number(db, solo, year=2026) == "ALB-2026-0001"
    assert next_number(db, company_a, year=2027) == "ALB-2027-0001"
    db.commit()

    counters = {(c.scope_key, c.year): c.value for c in db.query(DocumentCounter).all()}
    assert counters[(company_a.scope_key, 2026)] == 2
    assert counters[(solo.scope_key, 2026)] == 1


def test_counter_is_seeded_from_existing_numbers(db, principal, user):
    client = Client(name="Seed", created_by=user.id)
    db.add(client)
    db.flush()
    project = Project(name="Seeded", client_id=client.id, created_by=user.id)
    db.add(project)
    db.flush()
    # Issued before the counter table existed; archived notes keep their number
    db.add(DeliveryNote(number="ALB-2026-0009", project_id=project.id, created_by=user.id, deleted=True,
                        deleted_at=datetime.now(timezone.utc)))
    db.commit()

    assert next_number(db, principal, year=2026) == "ALB-2026-0010"


def test_total_is_rounded_to_cents():
    assert compute_total([{"person": "Luis", "hours": 3, "hourly_rate": 0.1}], None) == 0.3
    assert compute_total(None, [{"name": "Tornillo", "quantity": 3, "price": 0.7}]) == 2.1


def _issue(db, principal, project, year=2026):
    note = DeliveryNote(number=next_number(db, principal, year=year), project_id=project.id, **owner_snapshot(principal))
    db.add(note)
    db.commit()
    return note.number


def _project_for(db, user):
    client = Client(name=f"Cliente {user.first_name}", created_by=user.id, company_id=user.company_id)
    db.add(client)
    db.flush()
    project = Project(name=f"Obra {user.first_name}", client_id=client.id, created_by=user.id, company_id=user.company_id)
    db.add(project)
    db.commit()
    return project


def test_joining_a_company_does_not_reuse_personal_numbers(db, member_a, outsider):
    personal = _project_for(db, outsider)
    solo = Principal.for_user(outsider)
    assert [_issue(db, solo, personal) for _ in range(3)] == ["ALB-2026-0001", "ALB-2026-0002", "ALB-2026-0003"]

    shared = _project_for(db, member_a)
    assert _issue(db, Principal.for_user(member_a), shared) == "ALB-2026-0001"

    outsider.company_id = member_a.company_id
    outsider.company_role = "user"
    db.commit()
    joined = Principal.for_user(outsider)

    number = _issue(db, joined, shared)
    assert number == "ALB-2026-0004"
    visible = db.query(DeliveryNote.number).filter(DeliveryNote.created_by.in_([outsider.id, member_a.id])).all()
    assert [n for (n,) in visible].count(number) == 1
    # The company sequence continues past the lifted value
    assert _issue(db, Principal.for_user(member_a), shared) == "ALB-2026-0005"


def test_concurrent_creates_draw_distinct_numbers(tmp_path):
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'albaranes.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    enable_sqlite_savepoints(file_engine)
    Base.metadata.create_all(bind=file_engine)
    FileSession = sessionmaker(bind=file_engine, autoflush=False, autocommit=False, future=True)

    setup = FileSession()
    try:
        owner = make_user(setup, "ana@example.com", company=make_company(setup))
        project_id = _project_for(setup, owner).id
        principal = Principal.for_user(owner)
    finally:
        setup.close()

    workers = 8
    barrier = threading.Barrier(workers)
    numbers, errors = [], []

    def _create():
        session = FileSession()
        try:
            barrier.wait()
            numbers.append(create_note(session, principal, DeliveryNoteCreate(project_id=project_id)).number)
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=_create) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    file_engine.dispose()

    assert errors == []
    year = datetime.now(timezone.utc).year
    assert sorted(numbers) == [format_number(year, i) for i in range(1, workers + 1)]
