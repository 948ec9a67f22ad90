from shiftreport.gateway.base import ReportGateway
from shiftreport.gateway.demo import DemoReportGateway
from shiftreport.gateway.sqlite import PhotoBucket, SqliteReportGateway

BACKENDS = {
    'sqlite': SqliteReportGateway,
    'demo': DemoReportGateway,
}


def create_gateway(config, clock=None) -> ReportGateway:
    """Pick the adapter named by config.STORE_BACKEND and prepare its store."""
    backend = (getattr(config, 'STORE_BACKEND', 'demo') or 'demo').lower()
    try:
        cls = BACKENDS[backend]
    except KeyError:
        raise ValueError(f"Unknown STORE_BACKEND {backend!r}; expected one of {sorted(BACKENDS)}")
    gateway = cls(config, clock=clock)
    gateway.initialize()
    return gateway


__all__ = ['BACKENDS', 'DemoReportGateway', 'PhotoBucket', 'ReportGateway', 'SqliteReportGateway', 'create_gateway']
