from .step_10_resolve_device import ResolveDeviceStep
from .step_20_partition import PartitionStep
from .step_30_filesystems import FilesystemsStep
from .step_40_install_system import InstallSystemStep
from .step_50_configure_boot import ConfigureBootStep
from .step_60_run_setup import RunSetupStep

__all__ = [
    "ResolveDeviceStep",
    "PartitionStep",
    "FilesystemsStep",
    "InstallSystemStep",
    "ConfigureBootStep",
    "RunSetupStep",
]
