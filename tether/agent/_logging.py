# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Eliot message and action types used by the attachment agent.
"""

from eliot import Field, ActionType, MessageType


def _resource_id(resource):
    if resource is None:
        return None
    return resource.id


# An OPERATION is a list of:
# IAttachmentAPI method name, positional arguments, keyword arguments.
OPERATION = Field(
    u"operation", repr,
    u"The EC2 operation being executed, "
    u"along with positional and keyword arguments.")

AWS_ACTION = ActionType(
    u"tether:agent:aws",
    [OPERATION],
    [],
    u"An EC2 API operation is executing.")

BOTO_LOG_HEADER = u'tether:agent:aws:boto_logs'

INSTANCE_ID = Field.for_types(
    u"instance_id", [str],
    u"The EC2 identifier of this instance.")

VOLUME_ID = Field.for_types(
    u"volume_id", [str],
    u"The identifier of an EBS volume.")

NETWORK_INTERFACE_ID = Field.for_types(
    u"network_interface_id", [str],
    u"The identifier of an elastic network interface.")

NODE_ID = Field.for_types(
    u"node_id", [str],
    u"The node identity tag carried by a volume or network interface.")

VOLUME = Field(
    u"volume", _resource_id,
    u"The identifier of the volume believed attached, if any.")

NETWORK_INTERFACE = Field(
    u"network_interface", _resource_id,
    u"The identifier of the network interface believed attached, if any.")

RESOURCE_KIND = Field.for_types(
    u"resource_kind", [str],
    u"The kind of resource being observed.")

REASON = Field.for_types(
    u"reason", [str],
    u"A human-readable explanation of a failure.")

BLOCK_DEVICE_PATH = Field(
    u"block_device_path",
    lambda path: path.path,
    u"The system device file for an attached block device.")

FILESYSTEM_TYPE = Field.for_types(
    u"filesystem_type", [str],
    u"The name of a filesystem.")

MOUNTPOINT = Field(
    u"mountpoint",
    lambda path: path.path,
    u"The absolute path at which the volume's filesystem is mounted.")

VOLUME_ADOPTED = MessageType(
    u"agent:volume:adopted",
    [INSTANCE_ID, VOLUME_ID, NODE_ID],
    u"A volume was observed attached to this instance and is now believed "
    u"attached.")

VOLUME_DETACHED = MessageType(
    u"agent:volume:detached",
    [INSTANCE_ID, VOLUME_ID],
    u"The volume believed attached was observed available again.")

NETWORK_INTERFACE_ADOPTED = MessageType(
    u"agent:network_interface:adopted",
    [INSTANCE_ID, NETWORK_INTERFACE_ID, NODE_ID],
    u"A network interface was observed attached to this instance and is now "
    u"believed attached.")

NETWORK_INTERFACE_DETACHED = MessageType(
    u"agent:network_interface:detached",
    [INSTANCE_ID, NETWORK_INTERFACE_ID],
    u"The network interface believed attached was observed available again.")

OBSERVATION_FAILED = MessageType(
    u"agent:observe:failed",
    [RESOURCE_KIND, REASON],
    u"Listing candidate resources failed; no candidates this tick.")

NO_AVAILABLE_VOLUME = MessageType(
    u"agent:reconcile:no_available_volume",
    [INSTANCE_ID],
    u"Neither a volume nor a network interface is attached and no volume is "
    u"available, so network interface attachment is skipped.")

NO_MATCHING_NETWORK_INTERFACE = MessageType(
    u"agent:reconcile:no_matching_network_interface",
    [INSTANCE_ID, NODE_ID],
    u"No available network interface carries the attached volume's node "
    u"identity.")

NO_MATCHING_VOLUME = MessageType(
    u"agent:reconcile:no_matching_volume",
    [INSTANCE_ID, NODE_ID],
    u"No available volume carries the attached network interface's node "
    u"identity.")

NODE_ID_SET = MessageType(
    u"agent:reconcile:node_id_set",
    [INSTANCE_ID, NODE_ID],
    u"The attached volume and network interface agree on a node identity "
    u"which the instance has adopted.")

NODE_ID_MISMATCH = MessageType(
    u"agent:reconcile:node_id_mismatch",
    [INSTANCE_ID,
     Field.for_types(u"volume_node_id", [str],
                     u"The node identity of the attached volume."),
     Field.for_types(u"network_interface_node_id", [str],
                     u"The node identity of the attached network interface."),
     Field.for_types(u"level", [str], u"The severity of the message.")],
    u"The attached volume and network interface carry different node "
    u"identities.  Nothing is changed.")

RECONCILED = MessageType(
    u"agent:reconcile:tick",
    [INSTANCE_ID, NODE_ID, VOLUME, NETWORK_INTERFACE],
    u"One reconciliation tick finished.")

ATTACH_VOLUME = ActionType(
    u"agent:reconcile:attach_volume",
    [INSTANCE_ID, VOLUME_ID, NODE_ID],
    [],
    u"An available volume is being attached to this instance.")

ATTACH_NETWORK_INTERFACE = ActionType(
    u"agent:reconcile:attach_network_interface",
    [INSTANCE_ID, NETWORK_INTERFACE_ID, NODE_ID],
    [],
    u"An available network interface is being attached to this instance.")

CREATE_FILESYSTEM = ActionType(
    u"agent:filesystem:create",
    [BLOCK_DEVICE_PATH, FILESYSTEM_TYPE],
    [],
    u"A block device is being initialized with a filesystem.")

MOUNT_FILESYSTEM = ActionType(
    u"agent:filesystem:mount",
    [BLOCK_DEVICE_PATH, MOUNTPOINT],
    [],
    u"The filesystem of an attached volume is being mounted.")

DEVICE_NOT_PRESENT = MessageType(
    u"agent:filesystem:device_not_present",
    [BLOCK_DEVICE_PATH],
    u"The block device of the attached volume has not appeared in the OS "
    u"yet; filesystem provisioning waits for a later tick.")

FILESYSTEM_CHECK_FAILED = MessageType(
    u"agent:filesystem:check_failed",
    [BLOCK_DEVICE_PATH, REASON],
    u"Checking the block device for a filesystem failed; no filesystem is "
    u"created this tick.")

TICK_FAILED = MessageType(
    u"agent:loop:tick_failed",
    [REASON],
    u"A reconciliation tick failed unexpectedly; the loop keeps running.")

METADATA_ACTION = ActionType(
    u"agent:metadata:get",
    [],
    [INSTANCE_ID,
     Field.for_types(u"region", [str], u"The EC2 region of this instance."),
     Field.for_types(u"availability_zone", [str],
                     u"The availability zone of this instance.")],
    u"The instance's own identity is being read from instance metadata.")
