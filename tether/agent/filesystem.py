# -*- test-case-name: tether.agent.test.test_filesystem -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Preparing the block device of the attached volume: checking for, creating and
mounting its filesystem.
"""

from subprocess import CalledProcessError

import psutil

from pyrsistent import PClass, field

from twisted.python.filepath import FilePath

from zope.interface import Interface, implementer

from ..common.process import run_process
from .exceptions import MakeFilesystemError, MountError

# blkid's status when the device could be read but holds nothing it knows.
_BLKID_NOTHING_FOUND = 2


class MountInfo(PClass):
    """
    One mounted filesystem.

    :ivar FilePath blockdevice: The device that is mounted.
    :ivar FilePath mountpoint: Where it is mounted.
    """
    blockdevice = field(type=FilePath, mandatory=True)
    mountpoint = field(type=FilePath, mandatory=True)


class IFilesystemManager(Interface):
    """
    The operating system's view of the volume's block device.
    """

    def has_device(device):
        """
        :param FilePath device: A device node such as ``/dev/xvde``.

        :return: Whether the node exists yet.  It appears some time after the
            attach call returns.
        """

    def has_filesystem(device):
        """
        :param FilePath device: The device to inspect.

        :raises CalledProcessError: If the device could not be inspected, so
            whether it holds a filesystem is unknown.
        :raises OSError: If ``blkid`` could not be run.
        :return: ``True`` if the device holds a filesystem, ``False`` if it is
            known to be blank.
        """

    def make_filesystem(device, filesystem_type):
        """
        :param FilePath device: The device to format.
        :param unicode filesystem_type: For example ``u"ext4"``.

        :raises MakeFilesystemError: If the filesystem was not made.
        """

    def mount(device, mountpoint):
        """
        Mount ``device``, creating ``mountpoint`` if it is missing.

        :param FilePath device: The device to mount.
        :param FilePath mountpoint: The directory to mount it on.

        :raises MountError: If the device was not mounted.
        """

    def get_mounts():
        """
        :return: An iterable of ``MountInfo``, one per mounted device.
        """


@implementer(IFilesystemManager)
class FilesystemManager(PClass):
    """
    ``IFilesystemManager`` using ``blkid``, ``mkfs`` and ``mount``.
    """
    def has_device(self, device):
        return device.exists()

    def has_filesystem(self, device):
        try:
            run_process([u"blkid", u"-p", u"-u", u"filesystem", device.path])
        except CalledProcessError as e:
            # blkid also exits 2 when it cannot open the device, but then it
            # explains why on stderr.
            if e.returncode == _BLKID_NOTHING_FOUND and not e.output:
                return False
            raise
        return True

    def make_filesystem(self, device, filesystem_type):
        # -F: mke2fs otherwise asks before formatting a whole disk.
        command = [u"mkfs", u"-t", filesystem_type, u"-F", device.path]
        try:
            run_process(command)
        except CalledProcessError as e:
            raise MakeFilesystemError(
                blockdevice=device,
                source_message=e.output.decode("utf-8", "replace"),
            )
        except OSError as e:
            # mkfs itself could not be run.
            raise MakeFilesystemError(
                blockdevice=device, source_message=str(e))

    def mount(self, device, mountpoint):
        try:
            if not mountpoint.isdir():
                mountpoint.makedirs()
            run_process([u"mount", device.path, mountpoint.path])
        except CalledProcessError as e:
            raise MountError(
                blockdevice=device, mountpoint=mountpoint,
                source_message=e.output.decode("utf-8", "replace"),
            )
        except OSError as e:
            raise MountError(
                blockdevice=device, mountpoint=mountpoint,
                source_message=str(e),
            )

    def get_mounts(self):
        return [
            MountInfo(
                blockdevice=FilePath(partition.device),
                mountpoint=FilePath(partition.mountpoint),
            )
            for partition in psutil.disk_partitions()
        ]
