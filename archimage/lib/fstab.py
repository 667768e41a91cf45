from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

FSTAB_HEADER = "# <file system>\t<dir>\t<type>\t<options>\t<dump>\t<pass>\n"


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str
    dump: int = 0
    passno: int = 0

    def render(self) -> str:
        return "\t".join(
            [self.spec, self.mountpoint, self.fstype, self.options, str(self.dump), str(self.passno)]
        )


def root_entry(root_partuuid: str) -> FstabEntry:
    # At boot the overlay-root hook mounts a tmpfs over this; the entry
    # describes the partition underneath. The ESP is not mounted at all.
    return FstabEntry(
        spec=f"PARTUUID={root_partuuid}",
        mountpoint="/",
        fstype="ext4",
        options="rw,relatime,data=ordered",
    )


def render_fstab(entries: Iterable[FstabEntry]) -> str:
    return FSTAB_HEADER + "".join(e.render() + "\n" for e in entries)
