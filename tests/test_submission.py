import pytest

from shiftreport.errors import PhotoUploadError, ReportValidationError
from shiftreport.submission import submit_report

from conftest import jpeg_bytes, photo, png_bytes, valid_form


def test_uploads_in_order_and_reports_progress(gateway):
    calls = []
    first = photo(data=jpeg_bytes(color=(255, 0, 0)), filename='a.jpg')
    second = photo(data=png_bytes(), filename='b.png', content_type='image/png')

    report = submit_report(gateway, 'user-1', valid_form(), [first, second],
                           progress=lambda done, total: calls.append((done, total)))

    assert calls == [(1, 2), (2, 2)]
    assert len(report.photo_urls) == 2
    assert gateway.resolve_photo(report.photo_urls[0]) == first.data
    assert gateway.resolve_photo(report.photo_urls[1]) == second.data
    assert gateway.get_report(report.id).photo_urls == report.photo_urls


def test_no_photos_never_calls_progress(gateway):
    calls = []
    report = submit_report(gateway, 'user-1', valid_form(), progress=lambda *a: calls.append(a))
    assert calls == []
    assert report.photo_urls == []


def test_earlier_references_come_first(gateway):
    existing = gateway.upload_photo(photo(filename='earlier.jpg'))
    report = submit_report(gateway, 'user-1', valid_form(), [photo()], photo_refs=[existing])
    assert report.photo_urls[0] == existing
    assert len(report.photo_urls) == 2


@pytest.mark.parametrize('refs', ['mock://photo/abc', {'url': 'x'}, 42])
def test_photo_refs_must_be_a_list(gateway, refs):
    with pytest.raises(ReportValidationError) as exc:
        submit_report(gateway, 'user-1', valid_form(), photo_refs=refs)
    assert exc.value.errors == {'photo_urls': '写真の参照はリストで指定してください'}
    assert gateway.get_all_reports() == []


@pytest.mark.parametrize('bad_ref', ['mock://photo/unknown', '/storage/report-photos/reports/none.jpg',
                                     'https://example.com/a.jpg', None])
def test_unknown_photo_reference_is_rejected_before_uploads(gateway, bad_ref):
    calls = []
    good = gateway.upload_photo(photo())
    with pytest.raises(ReportValidationError) as exc:
        submit_report(gateway, 'user-1', valid_form(), [photo()], photo_refs=[good, bad_ref],
                      progress=lambda *a: calls.append(a))
    assert exc.value.errors == {'photo_urls': '存在しない写真が指定されています'}
    assert calls == []
    assert gateway.get_all_reports() == []


def test_owns_reference(gateway):
    ref = gateway.upload_photo(photo())
    assert gateway.owns_reference(ref)
    assert not gateway.owns_reference(ref + 'x')
    assert not gateway.owns_reference('')


def test_invalid_form_uploads_nothing(gateway):
    calls = []
    with pytest.raises(ReportValidationError):
        submit_report(gateway, 'user-1', valid_form(contract_name=''), [photo()],
                      progress=lambda *a: calls.append(a))
    assert calls == []
    assert gateway.get_all_reports() == []
    assert gateway.list_activity() == []


def test_one_oversize_photo_blocks_every_upload(gateway):
    calls = []
    photos = [photo(), photo(data=jpeg_bytes(size=6 * 1024 * 1024), filename='big.jpg')]
    with pytest.raises(PhotoUploadError):
        submit_report(gateway, 'user-1', valid_form(), photos, progress=lambda *a: calls.append(a))
    assert calls == []
    assert gateway.get_all_reports() == []


def test_submission_is_audited(gateway):
    report = submit_report(gateway, 'user-7', valid_form())
    assert [(e.action, e.resource_id) for e in gateway.list_activity('user-7')] == [('submit', report.id)]
