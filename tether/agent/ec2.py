# -*- test-case-name: tether.agent.test.test_ec2 -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
EC2 implementation of ``IAttachmentAPI`` and the instance metadata lookup.
"""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
import requests

from eliot import Message, register_exception_extractor

from pyrsistent import PClass, field

from twisted.python.filepath import FilePath

from zope.interface import implementer

from ._interfaces import IAttachmentAPI
from ._logging import AWS_ACTION, BOTO_LOG_HEADER, METADATA_ACTION
from ._model import Volume, NetworkInterface
from .exceptions import AttachFailed, MetadataError, ObservationFailed

BOTO_NUM_RETRIES = 10
DEFAULT_NODE_ID_TAG = u"NodeID"
DEFAULT_BLOCK_DEVICE = u"/dev/xvde"
DEFAULT_DEVICE_INDEX = 1

METADATA_ENDPOINT = u"http://169.254.169.254/latest/"
METADATA_TOKEN_TTL = 21600
METADATA_TIMEOUT = 2

# Exceptions from botocore meaning the call did not complete.
_AWS_FAILURES = (ClientError, BotoCoreError)


register_exception_extractor(
    ClientError,
    lambda e: {
        "aws_code": e.response.get('Error', {}).get('Code'),
        "aws_message": str(e.response.get('Error', {}).get('Message')),
        "aws_request_id": e.response.get(
            'ResponseMetadata', {}).get('RequestId'),
    }
)


class EliotLogHandler(logging.Handler):
    def emit(self, record):
        Message.log(
            message_type=BOTO_LOG_HEADER, message=record.getMessage()
        )


def _enable_boto_logging():
    """
    Make boto log activity using Eliot.
    """
    logger = logging.getLogger("boto3")
    logger.setLevel(logging.INFO)
    logger.addHandler(EliotLogHandler())

_enable_boto_logging()


class InstanceMetadata(PClass):
    """
    The identity of the instance the agent runs on.

    :ivar unicode instance_id: The EC2 instance identifier.
    :ivar unicode region: The region the instance runs in.
    :ivar unicode availability_zone: The availability zone of the instance.
    """
    instance_id = field(type=str, mandatory=True)
    region = field(type=str, mandatory=True)
    availability_zone = field(type=str, mandatory=True)


def _metadata_token(session, endpoint):
    path = u"api/token"
    try:
        response = session.put(
            endpoint + path,
            headers={
                "X-aws-ec2-metadata-token-ttl-seconds":
                    str(METADATA_TOKEN_TTL),
            },
            timeout=METADATA_TIMEOUT,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        raise MetadataError(path=path, reason=str(e))
    return response.text


def _read_metadata(session, endpoint, token, path):
    """
    Read one instance metadata value.

    :raises MetadataError: If the value could not be read or is empty.
    :return: The value, stripped of surrounding whitespace.
    """
    try:
        response = session.get(
            endpoint + path,
            headers={"X-aws-ec2-metadata-token": token},
            timeout=METADATA_TIMEOUT,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        raise MetadataError(path=path, reason=str(e))
    value = response.text.strip()
    if not value:
        raise MetadataError(path=path, reason=u"empty response")
    return value


def get_self_metadata(session=None, endpoint=METADATA_ENDPOINT):
    """
    Read this instance's identity from the EC2 instance metadata service
    using an IMDSv2 session token.

    :param session: A ``requests.Session``-like object.  A new session is
        used if none is given.
    :param unicode endpoint: The base URL of the metadata service.

    :raises MetadataError: If any part of the identity is unavailable.
    :return: An ``InstanceMetadata``.
    """
    if session is None:
        session = requests.Session()
    with METADATA_ACTION() as action:
        token = _metadata_token(session, endpoint)
        metadata = InstanceMetadata(
            instance_id=_read_metadata(
                session, endpoint, token, u"meta-data/instance-id"),
            region=_read_metadata(
                session, endpoint, token, u"meta-data/placement/region"),
            availability_zone=_read_metadata(
                session, endpoint, token,
                u"meta-data/placement/availability-zone"),
        )
        action.add_success_fields(
            instance_id=metadata.instance_id,
            region=metadata.region,
            availability_zone=metadata.availability_zone,
        )
    return metadata


def ec2_client(region):
    """
    Establish connection to EC2.

    Credentials come from botocore's usual chain, normally the instance
    profile.

    :param unicode region: The name of the EC2 region to connect to.

    :return: A boto3 EC2 client.
    """
    session = boto3.session.Session(region_name=region)
    return session.client(
        "ec2",
        config=Config(
            retries={"max_attempts": BOTO_NUM_RETRIES, "mode": "standard"},
        ),
    )


def parse_filters(filters_string):
    """
    Parse a comma-delimited filter expression such as
    ``tag-key=Env,Profile=foo``.

    Keys containing ``-`` or ``:`` are EC2 filter names and are used as they
    are.  Any other key names a tag, so ``Profile=foo`` filters on
    ``tag:Profile``.  Repeating a key adds values to the same filter.

    :param unicode filters_string: The expression.  Empty items are ignored.

    :raises ValueError: If an item is not of the form ``key=value``.
    :return: A ``list`` of EC2 ``Filters`` dictionaries in the order their
        names first appear.
    """
    filters = []
    by_name = {}
    for item in filters_string.split(u","):
        item = item.strip()
        if not item:
            continue
        key, separator, value = item.partition(u"=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(
                u"Filter {!r} is not of the form key=value".format(item))
        if u"-" in key or u":" in key:
            name = key
        else:
            name = u"tag:" + key
        if name not in by_name:
            by_name[name] = {"Name": name, "Values": []}
            filters.append(by_name[name])
        by_name[name]["Values"].append(value.strip())
    return filters


def build_filters(filters_string, availability_zone,
                  node_id_tag=DEFAULT_NODE_ID_TAG):
    """
    Build the filters passed to the EC2 listing calls.

    Resources can only be attached within the instance's availability zone so
    that zone always replaces any ``availability-zone`` filter in
    ``filters_string``.  Only resources carrying the node identity tag are
    listed, which keeps the instance's root volume and primary network
    interface out of the candidates; this replaces any ``tag-key`` filter.

    :param unicode filters_string: See ``parse_filters``.
    :param unicode availability_zone: The instance's availability zone.
    :param unicode node_id_tag: The tag carrying a resource's node identity.

    :return: A ``list`` of EC2 ``Filters`` dictionaries.
    """
    filters = [
        f for f in parse_filters(filters_string)
        if f["Name"] not in (u"availability-zone", u"tag-key")
    ]
    filters.append({"Name": u"tag-key", "Values": [node_id_tag]})
    filters.append(
        {"Name": u"availability-zone", "Values": [availability_zone]})
    return filters


def boto3_log(method):
    """
    Decorator to run a boto3 EC2 client method and log additional
    information about any exceptions that are raised.

    :param func method: The method to call.

    :return: A function which will call the method and do the extra
        exception logging.
    """
    def _run_with_logging(*args, **kwargs):
        with AWS_ACTION(operation=[method.__name__, args[1:], kwargs]):
            return method(*args, **kwargs)
    return _run_with_logging


def _get_tag(tags, key):
    """
    :param tags: An EC2 ``Tags`` or ``TagSet`` list.
    :param unicode key: The tag to look up.

    :return: The tag's value or the empty string.
    """
    for tag in tags:
        if tag["Key"] == key:
            return tag["Value"]
    return u""


@implementer(IAttachmentAPI)
class EC2AttachmentAPI(object):
    """
    An ``IAttachmentAPI`` backed by the EC2 API.

    :ivar client: A boto3 EC2 client.
    :ivar FilePath block_device: The device name volumes are attached as.
    :ivar int device_index: The device index network interfaces are attached
        at.
    :ivar unicode node_id_tag: The tag carrying a resource's node identity.
    """
    def __init__(self, client, block_device=FilePath(DEFAULT_BLOCK_DEVICE),
                 device_index=DEFAULT_DEVICE_INDEX,
                 node_id_tag=DEFAULT_NODE_ID_TAG):
        self.client = client
        self.block_device = block_device
        self.device_index = device_index
        self.node_id_tag = node_id_tag

    @boto3_log
    def describe_volumes(self, filters):
        paginator = self.client.get_paginator("describe_volumes")
        return [
            volume
            for page in paginator.paginate(Filters=filters)
            for volume in page["Volumes"]
        ]

    @boto3_log
    def describe_network_interfaces(self, filters):
        paginator = self.client.get_paginator("describe_network_interfaces")
        return [
            network_interface
            for page in paginator.paginate(Filters=filters)
            for network_interface in page["NetworkInterfaces"]
        ]

    @boto3_log
    def _attach_volume(self, volume_id, instance_id, device):
        return self.client.attach_volume(
            VolumeId=volume_id, InstanceId=instance_id, Device=device,
        )

    @boto3_log
    def _attach_network_interface(self, network_interface_id, instance_id,
                                  device_index):
        return self.client.attach_network_interface(
            NetworkInterfaceId=network_interface_id, InstanceId=instance_id,
            DeviceIndex=device_index,
        )

    def _to_volume(self, description):
        attachments = description.get("Attachments", [])
        if attachments:
            attached_to = attachments[0]["InstanceId"]
        else:
            attached_to = u""
        return Volume(
            id=description["VolumeId"],
            attached_to=attached_to,
            available=description["State"] == u"available",
            node_id=_get_tag(description.get("Tags", []), self.node_id_tag),
        )

    def _to_network_interface(self, description):
        attachment = description.get("Attachment", {})
        return NetworkInterface(
            id=description["NetworkInterfaceId"],
            attached_to=attachment.get("InstanceId", u""),
            available=description["Status"] == u"available",
            node_id=_get_tag(description.get("TagSet", []), self.node_id_tag),
        )

    def list_volumes(self, instance, filters):
        try:
            descriptions = self.describe_volumes(filters)
        except _AWS_FAILURES as e:
            raise ObservationFailed(resource_kind=u"volume", reason=str(e))
        return [self._to_volume(d) for d in descriptions]

    def list_network_interfaces(self, instance, filters):
        try:
            descriptions = self.describe_network_interfaces(filters)
        except _AWS_FAILURES as e:
            raise ObservationFailed(
                resource_kind=u"network_interface", reason=str(e))
        return [self._to_network_interface(d) for d in descriptions]

    def attach_volume(self, instance, volume):
        try:
            self._attach_volume(
                volume.id, instance.id, self.block_device.path)
        except _AWS_FAILURES as e:
            raise AttachFailed(
                resource_id=volume.id, instance_id=instance.id,
                reason=str(e),
            )

    def attach_network_interface(self, instance, network_interface):
        try:
            self._attach_network_interface(
                network_interface.id, instance.id, self.device_index)
        except _AWS_FAILURES as e:
            raise AttachFailed(
                resource_id=network_interface.id, instance_id=instance.id,
                reason=str(e),
            )
