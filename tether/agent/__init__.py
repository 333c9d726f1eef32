# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The attachment agent: observe tagged volumes and network interfaces, and
attach a matching pair to this instance.
"""

from ._interfaces import IAttachmentAPI
from ._loop import ReconcileLoopService
from ._model import Instance, Volume, NetworkInterface
from ._reconcile import (
    AttachmentController, Reconciler, Reconciliation, FilesystemOptions,
    AttachVolume, AttachNetworkInterface, CreateFilesystem, MountFilesystem,
    first_available,
)
from .exceptions import (
    MetadataError, ObservationFailed, AttachFailed, MakeFilesystemError,
    MountError,
)
from .filesystem import IFilesystemManager, FilesystemManager

__all__ = [
    'IAttachmentAPI', 'ReconcileLoopService',
    'Instance', 'Volume', 'NetworkInterface',
    'AttachmentController', 'Reconciler', 'Reconciliation',
    'FilesystemOptions', 'AttachVolume', 'AttachNetworkInterface',
    'CreateFilesystem', 'MountFilesystem', 'first_available',
    'MetadataError', 'ObservationFailed', 'AttachFailed',
    'MakeFilesystemError', 'MountError',
    'IFilesystemManager', 'FilesystemManager',
]
