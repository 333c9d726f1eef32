# -*- test-case-name: tether.agent.test.test_script -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The command-line ``tether-agent`` tool.
"""

from jsonschema import FormatChecker, Draft4Validator
from jsonschema.exceptions import ValidationError

import yaml

from pyrsistent import PClass, field

from twisted.python.filepath import FilePath
from twisted.python.usage import UsageError

from zope.interface import implementer

from ..common.script import (
    StandardOptions, ICommandLineScript, TetherScriptRunner,
    main_for_service,
)
from ._loop import ReconcileLoopService, DEFAULT_INTERVAL
from ._model import Instance
from ._reconcile import (
    AttachmentController, FilesystemOptions, Reconciler,
)
from .ec2 import (
    EC2AttachmentAPI, build_filters, ec2_client, get_self_metadata,
    parse_filters, DEFAULT_BLOCK_DEVICE, DEFAULT_DEVICE_INDEX,
    DEFAULT_NODE_ID_TAG,
)
from .filesystem import FilesystemManager


def tether_agent_main():
    """
    Implementation of the ``tether-agent`` command line script.

    This starts the attachment agent, which runs until it is killed.
    """
    agent_script = AgentScript(
        service_factory=AgentServiceFactory().get_service)
    return TetherScriptRunner(
        script=agent_script,
        options=AgentOptions(),
    ).main()


DEFAULTS = {
    "filters": u"",
    "block-device": DEFAULT_BLOCK_DEVICE,
    "create-file-system": False,
    "file-system-type": u"ext4",
    "mount-fs": False,
    "mount-point": u"/data",
    "node-id-tag": DEFAULT_NODE_ID_TAG,
    "device-index": DEFAULT_DEVICE_INDEX,
    "interval": DEFAULT_INTERVAL,
}

_PARAMETERS = [
    "filters", "block-device", "file-system-type", "mount-point",
    "node-id-tag", "device-index", "interval",
]

_FLAGS = ["create-file-system", "mount-fs"]


def validate_configuration(configuration):
    """
    Validate the contents of an agent configuration file.

    :param dict configuration: The loaded configuration.

    :raises ValidationError: If the configuration does not match the schema.
    """
    schema = {
        "$schema": "http://json-schema.org/draft-04/schema#",
        "type": "object",
        "required": ["version"],
        "additionalProperties": False,
        "properties": {
            "version": {
                "type": "number",
                "maximum": 1,
                "minimum": 1,
            },
            "filters": {"type": "string"},
            "block-device": {"type": "string", "pattern": "^/"},
            "create-file-system": {"type": "boolean"},
            "file-system-type": {"type": "string", "minLength": 1},
            "mount-fs": {"type": "boolean"},
            "mount-point": {"type": "string", "pattern": "^/"},
            "node-id-tag": {"type": "string", "minLength": 1},
            "device-index": {"type": "integer", "minimum": 1},
            "interval": {"type": "number", "minimum": 0,
                         "exclusiveMinimum": True},
        },
    }
    v = Draft4Validator(schema, format_checker=FormatChecker())
    v.validate(configuration)


def load_configuration(path):
    """
    Load and validate an agent configuration file.

    :param FilePath path: The YAML file.

    :raises UsageError: If the file cannot be read or is invalid.
    :return: A ``dict`` of option values, without ``version``.
    """
    try:
        configuration = yaml.safe_load(path.getContent())
    except (IOError, OSError) as e:
        raise UsageError(
            "Unable to read {}: {}".format(path.path, e))
    except yaml.YAMLError as e:
        raise UsageError(
            "Unable to parse {}: {}".format(path.path, e))
    if configuration is None:
        configuration = {}
    try:
        validate_configuration(configuration)
    except ValidationError as e:
        raise UsageError(
            "Configuration in {} is invalid: {}".format(path.path, e.message))
    configuration.pop("version")
    return configuration


class AgentOptions(StandardOptions):
    """
    Command line options for ``tether-agent``.

    Values given on the command line win over values from ``--agent-config``,
    which win over the defaults.
    """
    longdesc = """\
    tether-agent attaches a companion EBS volume and secondary network
    interface, paired by a node identity tag, to the EC2 instance it runs on.
    """

    synopsis = "Usage: tether-agent [OPTIONS]"

    optParameters = [
        ["filters", None, None,
         "Comma-delimited filters selecting candidate volumes and network "
         "interfaces, e.g. tag-key=Env,Profile=foo.  Keys containing '-' or "
         "':' are EC2 filter names, other keys are tag names. "
         "Default: no filters."],
        ["block-device", None, None,
         "The device name to attach the volume as. "
         "Default: " + DEFAULT_BLOCK_DEVICE],
        ["file-system-type", None, None,
         "The filesystem type to create. Default: ext4"],
        ["mount-point", None, None,
         "Where to mount the filesystem. Default: /data"],
        ["node-id-tag", None, None,
         "The tag carrying the node identity. "
         "Default: " + DEFAULT_NODE_ID_TAG],
        ["device-index", None, None,
         "The device index to attach the network interface at. Default: 1",
         int],
        ["interval", None, None,
         "Seconds between reconciliations. Default: 10", float],
        ["agent-config", "c", None,
         "A YAML file providing any of the above options."],
    ]

    optFlags = [
        ["create-file-system", None,
         "Create a filesystem on the volume's device if it has none."],
        ["mount-fs", None, "Mount the volume's filesystem."],
    ]

    def postOptions(self):
        configuration = dict(DEFAULTS)
        if self["agent-config"] is not None:
            configuration.update(
                load_configuration(FilePath(self["agent-config"])))
        for key in _PARAMETERS:
            if self[key] is not None:
                configuration[key] = self[key]
        for key in _FLAGS:
            if self[key]:
                configuration[key] = True

        try:
            parse_filters(configuration["filters"])
        except ValueError as e:
            raise UsageError(str(e))
        if configuration["interval"] <= 0:
            raise UsageError("interval must be positive")
        if configuration["device-index"] < 1:
            raise UsageError("device-index must be at least 1")

        self.update(configuration)


@implementer(ICommandLineScript)
class AgentScript(PClass):
    """
    What ``tether-agent`` does once its options are parsed: run the agent
    service until the reactor shuts down.

    :ivar service_factory: Called with the reactor and the parsed
        ``AgentOptions``; returns the ``IService`` to run.
    """
    service_factory = field(mandatory=True)

    def main(self, reactor, options):
        return main_for_service(
            reactor,
            self.service_factory(reactor, options)
        )


def _ec2_api(region, options):
    return EC2AttachmentAPI(
        client=ec2_client(region),
        block_device=FilePath(options["block-device"]),
        device_index=options["device-index"],
        node_id_tag=options["node-id-tag"],
    )


class AgentServiceFactory(PClass):
    """
    Wire the agent together from parsed options.  Every collaborator with
    an outside effect can be replaced.

    :ivar get_metadata: A no-argument callable returning ``InstanceMetadata``.
        Typically ``get_self_metadata``.
    :ivar api_factory: A two-argument callable taking a region and the parsed
        options and returning an ``IAttachmentAPI`` provider.
    :ivar filesystem_manager: The ``IFilesystemManager`` provider to use.
    """
    get_metadata = field(initial=(lambda: get_self_metadata), mandatory=True)
    api_factory = field(initial=(lambda: _ec2_api), mandatory=True)
    filesystem_manager = field(initial=FilesystemManager(), mandatory=True)

    def get_service(self, reactor, options):
        """
        Read this instance's identity and build the reconcile loop for it.

        :param reactor: The ``IReactorTime`` provider the loop runs on.
        :param AgentOptions options: The parsed options.

        :raises MetadataError: If this instance's identity is unavailable.
        :return: The ``ReconcileLoopService`` instance.
        """
        metadata = self.get_metadata()
        instance = Instance(
            id=metadata.instance_id,
            region=metadata.region,
            availability_zone=metadata.availability_zone,
        )
        api = self.api_factory(metadata.region, options)
        reconciler = Reconciler(
            api=api,
            filesystem_manager=self.filesystem_manager,
            filesystem_options=FilesystemOptions(
                device=FilePath(options["block-device"]),
                filesystem_type=options["file-system-type"],
                create_filesystem=bool(options["create-file-system"]),
                mount=bool(options["mount-fs"]),
                mountpoint=FilePath(options["mount-point"]),
            ),
        )
        controller = AttachmentController(
            instance=instance,
            api=api,
            filters=build_filters(
                options["filters"], metadata.availability_zone,
                options["node-id-tag"]),
            reconciler=reconciler,
        )
        return ReconcileLoopService(
            reactor=reactor,
            controller=controller,
            interval=options["interval"],
        )
