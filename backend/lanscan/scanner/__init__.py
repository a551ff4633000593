# Scanner module
from .models import DeviceRecord, UNRESOLVED_HOSTNAME
from .subnet_prober import SubnetProber

__all__ = ["DeviceRecord", "UNRESOLVED_HOSTNAME", "SubnetProber"]
