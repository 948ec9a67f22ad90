import io
import os
from datetime import datetime, timedelta

import pytest
from PIL import Image

from shiftreport.config import Config
from shiftreport.demo_store import DemoStore, MemoryStorage
from shiftreport.gateway import DemoReportGateway, SqliteReportGateway
from shiftreport.models import WORK_TYPES, PhotoFile


class StepClock:
    """Deterministic clock: every call moves one second forward."""

    def __init__(self, start=datetime(2026, 1, 20, 9, 0, 0), step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current = self.current + self.step
        return value


def make_config(tmp_path, **overrides):
    attrs = {
        'DATABASE': os.path.join(str(tmp_path), 'reports.db'),
        'STORAGE_DIR': os.path.join(str(tmp_path), 'storage'),
        'DEMO_STORE_PATH': '',
        'LOG_PATH': os.path.join(str(tmp_path), 'logs', 'app.log'),
        'STORE_BACKEND': 'demo',
        'SEED_DEMO_DATA': False,
        'ANTHROPIC_API_KEY': '',
        'OCR_TIMEOUT': None,
        'TESTING': True,
    }
    attrs.update(overrides)
    return type('TestConfig', (Config,), attrs)


def valid_form(**overrides):
    form = {
        'contract_name': '明石建設株式会社',
        'guard_location': '兵庫県明石市大久保町 1-2-3',
        'work_type': WORK_TYPES['ROAD_TRAFFIC'],
        'work_date_from': '2026-01-15T08:00:00',
        'work_date_to': '2026-01-15T17:00:00',
    }
    form.update(overrides)
    return form


def jpeg_bytes(size=None, color=(200, 30, 30)):
    """A real JPEG; when size is given it is padded past the end marker to exactly that many bytes."""
    buf = io.BytesIO()
    Image.new('RGB', (64, 48), color).save(buf, format='JPEG')
    data = buf.getvalue()
    if size is not None and size > len(data):
        data += b'\0' * (size - len(data))
    return data


def png_bytes(width=64, height=48):
    buf = io.BytesIO()
    Image.new('RGB', (width, height), (10, 120, 200)).save(buf, format='PNG')
    return buf.getvalue()


def photo(data=None, filename='site.jpg', content_type='image/jpeg'):
    return PhotoFile(filename=filename, content_type=content_type, data=jpeg_bytes() if data is None else data)


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def sqlite_gateway(tmp_path, clock):
    cfg = make_config(tmp_path, STORE_BACKEND='sqlite')
    gw = SqliteReportGateway(cfg, clock=clock)
    gw.initialize()
    yield gw
    gw.close()


@pytest.fixture
def demo_gateway(config, clock):
    gw = DemoReportGateway(config, store=DemoStore(MemoryStorage()), clock=clock)
    gw.initialize()
    return gw


@pytest.fixture(params=['sqlite', 'demo'])
def gateway(request):
    return request.getfixturevalue(f'{request.param}_gateway')
