# shiftreport/submission.py
import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from shiftreport.errors import ReportValidationError
from shiftreport.models import PhotoFile, Report, ReportFormData
from shiftreport.validation import validate_report

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

PHOTO_REFS_NOT_LIST_MESSAGE = '写真の参照はリストで指定してください'
PHOTO_REF_UNKNOWN_MESSAGE = '存在しない写真が指定されています'


def check_photo_refs(gateway, photo_refs: Any) -> List[str]:
    """Earlier uploads must arrive as a list of references this store actually holds."""
    if photo_refs is None:
        return []
    if not isinstance(photo_refs, (list, tuple)):
        raise ReportValidationError({'photo_urls': PHOTO_REFS_NOT_LIST_MESSAGE})
    refs = []
    for ref in photo_refs:
        if not isinstance(ref, str) or not gateway.owns_reference(ref):
            logger.info("Rejected unknown photo reference %r", ref)
            raise ReportValidationError({'photo_urls': PHOTO_REF_UNKNOWN_MESSAGE})
        refs.append(ref)
    return refs


def submit_report(
    gateway,
    owner_id: str,
    form_data: Union[ReportFormData, Mapping[str, Any]],
    photos: Sequence[PhotoFile] = (),
    progress: Optional[ProgressCallback] = None,
    photo_refs: Optional[Sequence[str]] = (),
) -> Report:
    """
    Validate the draft, upload its photos one at a time, then create the report.
    `progress(done, total)` is called after every finished upload.
    `photo_refs` are references uploaded earlier; they keep their place ahead
    of the new uploads. Nothing is created if validation or any upload fails.
    """
    payload = validate_report(form_data, gateway.tz_name)
    refs = check_photo_refs(gateway, photo_refs)

    # reject oversize or non-image files before the first upload starts
    for photo in photos:
        gateway.check_photo(photo)

    total = len(photos)
    for done, photo in enumerate(photos, start=1):
        refs.append(gateway.upload_photo(photo))
        logger.info("Uploaded photo %d of %d for %s", done, total, owner_id)
        if progress is not None:
            progress(done, total)

    return gateway.create_report(owner_id, payload, refs)
