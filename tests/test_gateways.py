import os
import sqlite3
from datetime import datetime

import pytest

from shiftreport.database import DatabaseManager
from shiftreport.demo_store import (
    ACTIVITY_KEY, PHOTO_REF_PREFIX, REPORTS_KEY, DemoStore, JsonFileStorage, MemoryStorage,
)
from shiftreport.errors import AuthError, BackendError, PhotoNotFound, PhotoUploadError, ReportNotFound
from shiftreport.gateway import DemoReportGateway, SqliteReportGateway, create_gateway
from shiftreport.models import Report, ReportSearchFilters
from shiftreport.validation import validate_report

from conftest import StepClock, jpeg_bytes, make_config, photo, png_bytes, valid_form

MB = 1024 * 1024


def _create(gateway, owner='user-1', **overrides):
    return gateway.create_report(owner, validate_report(valid_form(**overrides)))


def _stored_photo_count(gateway):
    if isinstance(gateway, DemoReportGateway):
        return len(gateway.store.photos())
    bucket_dir = os.path.join(gateway.bucket.bucket_dir, 'reports')
    return len(os.listdir(bucket_dir)) if os.path.isdir(bucket_dir) else 0


def test_create_report_round_trip(gateway):
    payload = validate_report(valid_form(
        weather='晴れ', break_time='60分', assigned_guards='山田 太郎\n佐藤 花子',
        special_notes='yes', special_notes_detail='通行人と接触\n怪我なし',
        traffic_guide_assigned=True, traffic_guide_assignee_name='山田 太郎',
        remarks='<script>alert(1)</script> & more',
    ))
    created = gateway.create_report('user-1', payload, ['ref-a', 'ref-b'])

    assert created.status == 'submitted'
    assert created.created_at == created.updated_at

    for fetched in (gateway.get_my_reports('user-1')[0], gateway.get_all_reports()[0],
                    gateway.get_report(created.id)):
        assert fetched == created
        assert fetched.model_dump(include=set(payload.model_dump())) == payload.model_dump()
        assert fetched.photo_urls == ['ref-a', 'ref-b']
        assert fetched.user_id == 'user-1'


def test_reports_are_newest_first(gateway):
    first = _create(gateway, contract_name='一番目')
    second = _create(gateway, contract_name='二番目')
    third = _create(gateway, owner='user-2', contract_name='三番目')

    assert [r.id for r in gateway.get_all_reports()] == [third.id, second.id, first.id]
    assert [r.id for r in gateway.get_my_reports('user-1')] == [second.id, first.id]
    assert gateway.get_my_reports('nobody') == []


def test_same_timestamp_keeps_latest_insert_first(tmp_path):
    fixed = datetime(2026, 1, 20, 9, 0, 0)
    for gw in (SqliteReportGateway(make_config(tmp_path, STORE_BACKEND='sqlite'), clock=lambda: fixed),
               DemoReportGateway(make_config(tmp_path), store=DemoStore(MemoryStorage()), clock=lambda: fixed)):
        gw.initialize()
        a = _create(gw)
        b = _create(gw)
        assert [r.id for r in gw.get_all_reports()] == [b.id, a.id]
        gw.close()


def test_search_without_filters_matches_get_all(gateway):
    for i in range(3):
        _create(gateway, owner=f'user-{i}', contract_name=f'契約{i}')
    assert [r.id for r in gateway.search_reports(ReportSearchFilters())] == \
        [r.id for r in gateway.get_all_reports()]
    assert [r.id for r in gateway.search_reports()] == [r.id for r in gateway.get_all_reports()]


def test_search_contract_name_is_case_insensitive_substring(gateway):
    upper = _create(gateway, contract_name='ABC建設株式会社')
    lower = _create(gateway, contract_name='株式会社abc商事')
    _create(gateway, contract_name='XYZ工業')

    found = gateway.search_reports(ReportSearchFilters(contract_name='Abc'))
    assert {r.id for r in found} == {upper.id, lower.id}
    assert [r.id for r in found] == [lower.id, upper.id]
    assert gateway.search_reports(ReportSearchFilters(contract_name='存在しない')) == []


def test_search_date_range_is_inclusive(gateway):
    jan15 = _create(gateway, work_date_from='2026-01-15T08:00:00', work_date_to='2026-01-15T17:00:00')
    jan16 = _create(gateway, work_date_from='2026-01-16T08:00:00', work_date_to='2026-01-16T17:00:00')

    from_start = gateway.search_reports(ReportSearchFilters(start_date=datetime(2026, 1, 15, 8, 0)))
    assert {r.id for r in from_start} == {jan15.id, jan16.id}

    after = gateway.search_reports(ReportSearchFilters(start_date=datetime(2026, 1, 15, 8, 1)))
    assert [r.id for r in after] == [jan16.id]

    until = gateway.search_reports(ReportSearchFilters(end_date=datetime(2026, 1, 15, 17, 0)))
    assert [r.id for r in until] == [jan15.id]


def test_search_filters_are_conjunctive(gateway):
    mine = _create(gateway, owner='user-1', contract_name='明石建設')
    _create(gateway, owner='user-2', contract_name='明石建設')
    _create(gateway, owner='user-1', contract_name='神戸建設')

    found = gateway.search_reports(ReportSearchFilters(owner_id='user-1', contract_name='明石'))
    assert [r.id for r in found] == [mine.id]


def test_get_report_unknown_id(gateway):
    with pytest.raises(ReportNotFound):
        gateway.get_report('missing')


def test_oversize_photo_rejected_before_any_write(gateway):
    with pytest.raises(PhotoUploadError) as exc:
        gateway.upload_photo(photo(data=jpeg_bytes(size=6 * MB)))
    assert exc.value.message == 'ファイルサイズは5MB以下にしてください'
    assert _stored_photo_count(gateway) == 0


def test_photo_type_rejected(gateway):
    with pytest.raises(PhotoUploadError) as exc:
        gateway.upload_photo(photo(filename='anim.gif', content_type='image/gif'))
    assert exc.value.message == 'JPEG、PNGファイルのみアップロード可能です'
    assert _stored_photo_count(gateway) == 0


def test_four_megabyte_jpeg_round_trips(gateway):
    data = jpeg_bytes(size=4 * MB)
    ref = gateway.upload_photo(photo(data=data))
    assert gateway.resolve_photo(ref) == data
    assert _stored_photo_count(gateway) == 1


def test_png_accepted(gateway):
    data = png_bytes()
    ref = gateway.upload_photo(photo(data=data, filename='scan.png', content_type='image/png'))
    assert gateway.resolve_photo(ref) == data


def test_unknown_photo_reference(gateway):
    with pytest.raises(PhotoNotFound):
        gateway.resolve_photo('mock://photo/does-not-exist')
    with pytest.raises(PhotoNotFound):
        gateway.resolve_photo('/storage/report-photos/reports/nothing.jpg')


def test_submit_writes_audit_entry(gateway):
    report = _create(gateway)
    entries = gateway.list_activity('user-1')
    assert [(e.action, e.resource_type, e.resource_id) for e in entries] == [('submit', 'report', report.id)]


def test_account_actions_write_audit_entries(gateway):
    user = gateway.sign_up('Guard@Example.com', '鈴木 一郎')
    assert user.email == 'guard@example.com'
    session = gateway.sign_in('guard@example.com')
    assert session.user.id == user.id
    assert session.access_token
    gateway.sign_out(user.id)

    assert [e.action for e in gateway.list_activity(user.id)] == ['signup', 'login', 'logout']


def test_duplicate_sign_up_and_unknown_sign_in(gateway):
    gateway.sign_up('a@example.com')
    with pytest.raises(AuthError):
        gateway.sign_up('A@example.com')
    with pytest.raises(AuthError):
        gateway.sign_in('nobody@example.com')


def test_display_names(gateway):
    named = gateway.sign_up('named@example.com', '田中 次郎')
    bare = gateway.sign_up('bare@example.com')
    names = gateway.display_names([named.id, bare.id, 'ghost', named.id])
    assert names == {named.id: '田中 次郎', bare.id: 'bare@example.com'}


# ---------- sqlite adapter ----------

def test_sqlite_photo_reference_is_public_url(sqlite_gateway):
    ref = sqlite_gateway.upload_photo(photo())
    assert ref.startswith('/storage/report-photos/reports/')
    assert ref.endswith('.jpg')


def test_sqlite_bucket_refuses_paths_outside_bucket(sqlite_gateway):
    with pytest.raises(PhotoNotFound):
        sqlite_gateway.resolve_photo('/storage/report-photos/../reports.db')


def test_sqlite_reopen_keeps_reports(tmp_path):
    cfg = make_config(tmp_path, STORE_BACKEND='sqlite')
    gw = SqliteReportGateway(cfg, clock=StepClock())
    gw.initialize()
    report = _create(gw)
    gw.close()

    reopened = SqliteReportGateway(cfg)
    reopened.initialize()
    assert reopened.get_report(report.id) == report
    reopened.close()


def test_init_db_adds_missing_columns(tmp_path):
    path = os.path.join(str(tmp_path), 'old.db')
    conn = sqlite3.connect(path)
    conn.execute('''
        CREATE TABLE reports (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            user_id TEXT NOT NULL,
            contract_name TEXT NOT NULL,
            guard_location TEXT NOT NULL,
            work_type TEXT NOT NULL,
            work_detail TEXT DEFAULT '',
            work_date_from TEXT NOT NULL,
            work_date_to TEXT NOT NULL,
            photo_urls TEXT DEFAULT '[]',
            special_notes TEXT DEFAULT '',
            special_notes_detail TEXT DEFAULT '',
            traffic_guide_assigned INTEGER NOT NULL DEFAULT 0,
            traffic_guide_assignee_name TEXT DEFAULT '',
            misc_guard_assigned INTEGER NOT NULL DEFAULT 0,
            misc_guard_assignee_name TEXT DEFAULT '',
            remarks TEXT DEFAULT '',
            status TEXT NOT NULL DEFAULT 'submitted',
            created_at TEXT NOT NULL
        )
    ''')
    conn.commit()
    conn.close()

    manager = DatabaseManager(path)
    manager.init_db()
    with manager.db_connection() as db:
        cols = {r['name'] for r in db.execute('PRAGMA table_info(reports)').fetchall()}
    manager.close_db()
    assert {'weather', 'break_time', 'overtime_time', 'assigned_guards', 'updated_at'} <= cols


# ---------- demo adapter ----------

def test_demo_photo_reference_embeds_bytes(demo_gateway):
    data = jpeg_bytes()
    ref = demo_gateway.upload_photo(photo(data=data, filename='gate.jpg'))
    assert ref.startswith(PHOTO_REF_PREFIX)
    entry = demo_gateway.photo_entry(ref[len(PHOTO_REF_PREFIX):])
    assert entry['data_url'].startswith('data:image/jpeg;base64,')
    assert entry['filename'] == 'gate.jpg'
    assert entry['created_at']


def test_demo_seeds_exactly_once(tmp_path):
    cfg = make_config(tmp_path, SEED_DEMO_DATA=True)
    store = DemoStore(MemoryStorage())
    gw = DemoReportGateway(cfg, store=store, clock=StepClock())

    assert gw.initialize() is True
    assert gw.initialize() is False
    assert DemoReportGateway(cfg, store=store).initialize() is False

    assert len(store.users()) == 2
    reports = gw.get_all_reports()
    assert len(reports) == 2
    assert gw.list_activity() == []
    assert gw.sign_in('admin@celutrust.co.jp').user.role == 'admin'


def test_demo_session_is_saved_and_cleared(demo_gateway):
    user = demo_gateway.sign_up('s@example.com', '佐々木')
    demo_gateway.sign_in('s@example.com')
    assert demo_gateway.current_session().user.id == user.id
    demo_gateway.sign_out(user.id)
    assert demo_gateway.current_session() is None


def test_demo_json_file_storage_persists(tmp_path):
    path = os.path.join(str(tmp_path), 'demo', 'store.json')
    cfg = make_config(tmp_path, DEMO_STORE_PATH=path)
    gw = DemoReportGateway(cfg, clock=StepClock())
    report = _create(gw)
    ref = gw.upload_photo(photo())

    reopened = DemoReportGateway(cfg, store=DemoStore(JsonFileStorage(path)))
    assert reopened.get_report(report.id) == report
    assert reopened.resolve_photo(ref) == jpeg_bytes()


def test_create_gateway_picks_adapter(tmp_path):
    gw = create_gateway(make_config(tmp_path, STORE_BACKEND='sqlite'))
    assert isinstance(gw, SqliteReportGateway)
    gw.close()
    assert isinstance(create_gateway(make_config(tmp_path, STORE_BACKEND='demo')), DemoReportGateway)
    with pytest.raises(ValueError):
        create_gateway(make_config(tmp_path, STORE_BACKEND='postgres'))


# ---------- failed writes ----------

class ActivityWriteFails(MemoryStorage):
    def set_item(self, key, value):
        if key == ACTIVITY_KEY:
            raise OSError('disk full')
        super().set_item(key, value)


def test_sqlite_report_not_kept_when_audit_write_fails(sqlite_gateway):
    with sqlite_gateway.db_manager.db_connection() as db:
        db.execute('DROP TABLE activity_logs')
        db.commit()

    with pytest.raises(BackendError):
        _create(sqlite_gateway)
    assert sqlite_gateway.get_all_reports() == []


def test_demo_report_not_kept_when_audit_write_fails(config, clock):
    gw = DemoReportGateway(config, store=DemoStore(ActivityWriteFails()), clock=clock)
    earlier = validate_report(valid_form(contract_name='既存'))
    gw.store.append(REPORTS_KEY, Report(id='r-0', user_id='user-0', created_at=clock(), updated_at=clock(),
                                        **earlier.model_dump()).model_dump(mode='json'))

    with pytest.raises(BackendError):
        _create(gw)
    assert [r.id for r in gw.get_all_reports()] == ['r-0']


@pytest.mark.parametrize('call', [
    lambda gw: gw.list_activity(),
    lambda gw: gw.record_activity('user-1', 'login'),
    lambda gw: gw.sign_up('x@example.com'),
    lambda gw: gw.sign_in('x@example.com'),
    lambda gw: gw.get_user('user-1'),
    lambda gw: gw.get_report('r-1'),
    lambda gw: gw.get_all_reports(),
])
def test_sqlite_errors_surface_as_backend_error(sqlite_gateway, call):
    with sqlite_gateway.db_manager.db_connection() as db:
        for table in ('activity_logs', 'user_profiles', 'reports'):
            db.execute(f'DROP TABLE {table}')
        db.commit()

    with pytest.raises(BackendError):
        call(sqlite_gateway)
