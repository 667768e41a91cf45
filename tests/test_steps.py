import os
from pathlib import Path

import pytest

from archimage.build_config import BuildConfig
from archimage.cleanup import CleanupStack
from archimage.errors import CommandError, DeviceResolutionError
from archimage.lib import block
from archimage.lib.block import DeviceNamingScheme, LogicalDisk, ResolvedPartitionDevices
from archimage.lib.mounts import MountContext
from archimage.lib.storage import PartitionPlan
from archimage.pipeline import BuildCtx
from archimage.steps import step_10_resolve_device
from archimage.steps import (
    ConfigureBootStep,
    FilesystemsStep,
    InstallSystemStep,
    PartitionStep,
    ResolveDeviceStep,
    RunSetupStep,
)


def _ctx(tmp_path, image_path="disk.img", inspect=False, **cfg):
    config = BuildConfig(config_dir=tmp_path, **cfg)
    return BuildCtx(cfg=config, image_path=str(image_path), cleanup=CleanupStack(), inspect=inspect)


def _parts():
    return ResolvedPartitionDevices("/dev/loop7p1", "/dev/loop7p2", DeviceNamingScheme.P_SEPARATED)


def test_resolve_image_file_attaches_loop_and_registers_detach(tmp_path, fake_run):
    img = tmp_path / "disk.img"
    img.write_bytes(b"previous build")
    ctx = _ctx(tmp_path, image_path=img, image_size=2048)

    state = ResolveDeviceStep().run(ctx, {})

    assert state["disk"] == LogicalDisk("/dev/loop7", backing=str(img))
    assert fake_run.calls == [
        ["truncate", "--size", "2048", str(img)],
        ["losetup", "--partscan", "--find", "--show", str(img)],
    ]
    assert [a.description for a in ctx.cleanup.actions] == ["detach loop device /dev/loop7"]

    ctx.cleanup.unwind()
    assert fake_run.calls[-1] == ["losetup", "--detach", "/dev/loop7"]


def test_resolve_block_device_zaps_without_cleanup(tmp_path, fake_run, monkeypatch):
    monkeypatch.setattr(
        step_10_resolve_device,
        "classify_target",
        lambda p: block.DiskTarget(p, block.TargetKind.BLOCK_DEVICE),
    )
    ctx = _ctx(tmp_path, image_path="/dev/sdz")

    state = ResolveDeviceStep().run(ctx, {})

    assert state["disk"] == LogicalDisk("/dev/sdz")
    assert fake_run.calls == [["sgdisk", "--zap-all", "/dev/sdz"]]
    assert ctx.cleanup.actions == []


def test_resolve_unclassifiable_target_acquires_nothing(tmp_path, fake_run):
    ctx = _ctx(tmp_path, image_path=tmp_path)

    with pytest.raises(DeviceResolutionError):
        ResolveDeviceStep().run(ctx, {})

    assert fake_run.calls == []
    assert ctx.cleanup.actions == []


def test_partition_step_resolves_loop_names(tmp_path, fake_run, sysfs):
    (sysfs / "loop7" / "loop7p1").mkdir(parents=True)
    ctx = _ctx(tmp_path)

    state = PartitionStep().run(ctx, {"disk": LogicalDisk("/dev/loop7", backing="disk.img")})

    assert state["partitions"].efi_device_path == "/dev/loop7p1"
    assert state["partitions"].root_device_path == "/dev/loop7p2"
    sgdisk = fake_run.commands("sgdisk")
    assert len(sgdisk) == 1
    assert f"--partition-guid=2:{state['plan'].root.partuuid}" in sgdisk[0]


def test_partition_step_fails_when_kernel_has_no_partitions(tmp_path, fake_run, sysfs):
    (sysfs / "loop7").mkdir()

    with pytest.raises(DeviceResolutionError):
        PartitionStep().run(_ctx(tmp_path), {"disk": LogicalDisk("/dev/loop7", backing="disk.img")})


def test_filesystems_step_formats_mounts_and_registers_in_order(tmp_path, fake_run, scratch_tmp):
    ctx = _ctx(tmp_path)

    state = FilesystemsStep().run(ctx, {"partitions": _parts()})

    mount_root = state["mounts"].mount_root
    assert Path(mount_root).parent == scratch_tmp
    assert fake_run.calls == [
        ["mkfs.fat", "-F", "32", "/dev/loop7p1"],
        ["mkfs.ext4", "-F", "-L", "root", "/dev/loop7p2"],
        ["mount", "/dev/loop7p2", mount_root],
        ["mount", "/dev/loop7p1", os.path.join(mount_root, "boot")],
    ]
    assert [a.fn.__name__ for a in ctx.cleanup.actions] == ["remove_mount_root", "umount_recursive"]


def test_failed_root_mount_still_removes_directory(tmp_path, fake_run, scratch_tmp):
    fake_run.fail["mount"] = 32
    ctx = _ctx(tmp_path)

    with pytest.raises(CommandError):
        FilesystemsStep().run(ctx, {"partitions": _parts()})
    ctx.cleanup.unwind()

    assert list(scratch_tmp.iterdir()) == []
    assert fake_run.commands("umount") == []


def test_failed_format_acquires_nothing(tmp_path, fake_run, scratch_tmp):
    fake_run.fail["mkfs.ext4"] = 1
    ctx = _ctx(tmp_path)

    with pytest.raises(CommandError):
        FilesystemsStep().run(ctx, {"partitions": _parts()})

    assert ctx.cleanup.actions == []
    assert list(scratch_tmp.iterdir()) == []


def test_install_system_uses_base_then_requested_packages(tmp_path, fake_run):
    ctx = _ctx(tmp_path, packages=("openssh", "grub", "vim"))

    InstallSystemStep().run(ctx, {"mounts": MountContext(str(tmp_path))})

    assert fake_run.calls == [
        ["pacstrap", "-c", str(tmp_path), "base", "linux", "linux-firmware", "grub", "openssh", "vim"]
    ]


def test_install_failure_propagates(tmp_path, fake_run):
    fake_run.fail["pacstrap"] = 1
    with pytest.raises(CommandError):
        InstallSystemStep().run(_ctx(tmp_path), {"mounts": MountContext(str(tmp_path))})


def test_configure_boot_writes_tree_and_runs_grub(tmp_path, fake_run):
    root = tmp_path / "mnt"
    (root / "etc" / "default").mkdir(parents=True)
    (root / "etc" / "default" / "grub").write_text("GRUB_DEFAULT=0\n", encoding="utf-8")
    plan = PartitionPlan.generate()

    ConfigureBootStep().run(
        _ctx(tmp_path, hostname="test-host"), {"mounts": MountContext(str(root)), "plan": plan}
    )

    fstab = (root / "etc/fstab").read_text(encoding="utf-8").splitlines()
    entries = [line for line in fstab if not line.startswith("#")]
    assert entries == [f"PARTUUID={plan.root.partuuid}\t/\text4\trw,relatime,data=ordered\t0\t0"]
    assert (root / "etc/hostname").read_text(encoding="utf-8") == "test-host\n"
    assert os.readlink(root / "etc/localtime") == "/usr/share/zoneinfo/Universal"
    assert (root / "etc/default/grub").read_text(encoding="utf-8") == (
        "GRUB_DEFAULT=0\nGRUB_TIMEOUT=1\nGRUB_CMDLINE_LINUX_DEFAULT=\"loglevel=3 audit=0\"\n"
    )
    assert fake_run.calls == [
        [
            "arch-chroot",
            str(root),
            "grub-install",
            "--target=x86_64-efi",
            "--efi-directory=/boot",
            "--bootloader-id=GRUB",
            "--removable",
            "--no-nvram",
        ],
        ["arch-chroot", str(root), "grub-mkconfig", "-o", "/boot/grub/grub.cfg"],
    ]


def test_configure_boot_replaces_localtime_and_can_regenerate_initramfs(tmp_path, fake_run):
    root = tmp_path / "mnt"
    (root / "etc").mkdir(parents=True)
    os.symlink("/usr/share/zoneinfo/Europe/Oslo", root / "etc/localtime")

    ConfigureBootStep().run(
        _ctx(tmp_path, timezone="UTC", regenerate_initramfs=True),
        {"mounts": MountContext(str(root)), "plan": PartitionPlan.generate()},
    )

    assert os.readlink(root / "etc/localtime") == "/usr/share/zoneinfo/UTC"
    assert ["arch-chroot", str(root), "mkinitcpio", "-P"] in fake_run.calls


def test_run_setup_nothing_configured(tmp_path, fake_run):
    RunSetupStep().run(_ctx(tmp_path), {"mounts": MountContext(str(tmp_path))})
    assert fake_run.calls == []


def test_run_setup_stages_runs_and_removes(tmp_path, fake_run):
    root = tmp_path / "mnt"
    root.mkdir()
    src = tmp_path / "files"
    src.mkdir()
    script = tmp_path / "setup.sh"
    script.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    exclude = tmp_path / "exclude.txt"
    exclude.write_text("*.swp\n", encoding="utf-8")

    seen = {}

    def check_staged(argv):
        staged = root / "setup.sh"
        seen["mode"] = staged.stat().st_mode & 0o777
        seen["setup_dir"] = (root / "setup").is_dir()

    fake_run.hooks["/setup.sh"] = check_staged

    ctx = _ctx(tmp_path, setup_script=script, setup_dir=src, setup_exclude=exclude)
    RunSetupStep().run(ctx, {"mounts": MountContext(str(root))})

    assert fake_run.calls == [
        ["rsync", "-a", "--exclude-from", str(exclude), f"{src}/", str(root / "setup")],
        ["arch-chroot", str(root), "/setup.sh"],
    ]
    assert seen == {"mode": 0o755, "setup_dir": True}
    assert not (root / "setup.sh").exists()
    assert not (root / "setup").exists()


def test_failing_setup_script_is_fatal_and_removed(tmp_path, fake_run):
    root = tmp_path / "mnt"
    root.mkdir()
    script = tmp_path / "setup.sh"
    script.write_text("#!/bin/sh\nexit 3\n", encoding="utf-8")
    fake_run.fail["/setup.sh"] = 3

    with pytest.raises(CommandError) as exc:
        RunSetupStep().run(_ctx(tmp_path, setup_script=script), {"mounts": MountContext(str(root))})

    assert exc.value.returncode == 3
    assert not (root / "setup.sh").exists()


def test_inspect_shell_runs_after_script_and_ignores_status(tmp_path, fake_run):
    root = tmp_path / "mnt"
    root.mkdir()
    src = tmp_path / "files"
    src.mkdir()
    fake_run.fail["bash"] = 1

    RunSetupStep().run(_ctx(tmp_path, inspect=True, setup_dir=src), {"mounts": MountContext(str(root))})

    assert fake_run.calls[-1] == ["arch-chroot", str(root), "bash"]
    # Interactive: the shell keeps the terminal.
    assert "stdout" not in fake_run.kwargs[-1]
    assert not (root / "setup").exists()
