from __future__ import annotations

import logging
import os
from pathlib import Path

from .chroot import chroot_cmd

logger = logging.getLogger(__name__)

GRUB_DEFAULTS_APPEND = (
    "GRUB_TIMEOUT=1\n"
    'GRUB_CMDLINE_LINUX_DEFAULT="loglevel=3 audit=0"\n'
)


def install_grub_removable(*, target_root: str) -> None:
    """Install GRUB to the ESP fallback path.

    --removable with --no-nvram writes EFI/BOOT/BOOTX64.EFI and leaves the
    host's NVRAM boot entries alone, so the image boots on any machine.
    Assumes the ESP is mounted at /boot in target.
    """

    chroot_cmd(
        target_root,
        [
            "grub-install",
            "--target=x86_64-efi",
            "--efi-directory=/boot",
            "--bootloader-id=GRUB",
            "--removable",
            "--no-nvram",
        ],
    )
    logger.info("GRUB EFI installed (removable)")


def append_grub_defaults(*, target_root: str) -> None:
    p = Path(target_root) / "etc/default/grub"
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write(GRUB_DEFAULTS_APPEND)


def generate_grub_config(*, target_root: str) -> None:
    chroot_cmd(target_root, ["grub-mkconfig", "-o", "/boot/grub/grub.cfg"])


def regenerate_initramfs(*, target_root: str) -> None:
    chroot_cmd(target_root, ["mkinitcpio", "-P"])


def set_timezone(*, target_root: str, zone: str) -> None:
    link = Path(target_root) / "etc/localtime"
    link.parent.mkdir(parents=True, exist_ok=True)
    if link.is_symlink() or link.exists():
        link.unlink()
    os.symlink(f"/usr/share/zoneinfo/{zone}", link)


def write_hostname(*, target_root: str, hostname: str) -> None:
    p = Path(target_root) / "etc/hostname"
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(hostname + "\n", encoding="utf-8")
