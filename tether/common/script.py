# -*- test-case-name: tether.common.test.test_script -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Command-line plumbing shared by tether's scripts: the standard options, Eliot
log output and running a script's service for the life of the reactor.
"""

import sys

from eliot import FileDestination, MessageType, fields, write_failure
from eliot.logwriter import ThreadedWriter

from twisted.application.service import MultiService, Service
from twisted.internet import task
from twisted.internet.defer import Deferred, maybeDeferred
from twisted.logger import formatEvent, globalLogBeginner
from twisted.python import usage
from twisted.python.filepath import FilePath
from twisted.python.logfile import LogFile

from zope.interface import Interface

from .. import __version__


__all__ = [
    'StandardOptions',
    'ICommandLineScript',
    'TetherScriptRunner',
    'main_for_service',
]


LOGFILE_LENGTH = 100 * 1024 * 1024
LOGFILE_COUNT = 5


class StandardOptions(usage.Options):
    """
    ``usage.Options`` carrying the options every tether command accepts.

    ``logfile`` is standard output unless ``--logfile`` is given.

    :ivar _sys_module: The ``sys``-like module whose ``stdout`` is used.
    """
    def __init__(self, sys_module=sys):
        usage.Options.__init__(self)
        self._sys_module = sys_module
        self["verbosity"] = 0
        self["logfile"] = sys_module.stdout

    def opt_version(self):
        """Print the program's version and exit."""
        self._sys_module.stdout.write(__version__ + u"\n")
        raise SystemExit(0)

    def opt_verbose(self):
        """Increase the logging verbosity. May be repeated."""
        self["verbosity"] += 1

    opt_v = opt_verbose

    def opt_logfile(self, path):
        """
        Log to a file instead of standard output. The file is rotated at
        100 MiB and five old files are kept. Missing directories are created.
        """
        path = FilePath(path)
        if not path.parent().isdir():
            path.parent().makedirs()
        self["logfile"] = LogFile.fromFullPath(
            path.path,
            rotateLength=LOGFILE_LENGTH,
            maxRotatedFiles=LOGFILE_COUNT,
        )


class ICommandLineScript(Interface):
    """
    The work done by a script once its options have been parsed.
    """
    def main(reactor, options):
        """
        :param reactor: The reactor to run on.
        :param StandardOptions options: The parsed options.

        :return: A ``Deferred`` that fires when the script is done.
        """


TWISTED_LOG_MESSAGE = MessageType(
    u"twisted:log",
    fields(error=bool, message=str),
    u"An event logged through Twisted's logging system.")


def forward_twisted_event(event):
    """
    A ``twisted.logger`` observer writing each event as an Eliot message.
    """
    message = formatEvent(event)
    failure = event.get("log_failure")
    if failure is not None:
        message = u"\n".join([message, failure.getTraceback()])
    TWISTED_LOG_MESSAGE.log(
        error=failure is not None or bool(event.get("isError")),
        message=message,
    )


class TwistedLogForwarder(Service):
    """
    Send everything logged through Twisted to Eliot while running.

    :ivar beginner: The ``LogBeginner`` to begin logging with.
    :ivar bool redirect_stdio: Whether ``print`` and stray writes to the
        standard streams become log events too.
    """
    def __init__(self, beginner=globalLogBeginner, redirect_stdio=True):
        self.beginner = beginner
        self.redirect_stdio = redirect_stdio

    def startService(self):
        Service.startService(self)
        self.beginner.beginLoggingTo(
            [forward_twisted_event], redirectStandardIO=self.redirect_stdio)


def eliot_logging_service(log_file, reactor, capture_stdout):
    """
    :param log_file: A file-like object Eliot messages are written to, one
        JSON document per line.
    :param reactor: The reactor the writer thread reports back to.
    :param bool capture_stdout: See ``TwistedLogForwarder.redirect_stdio``.

    :return: An ``IService`` which writes Eliot messages while running.
    """
    service = MultiService()
    ThreadedWriter(FileDestination(file=log_file), reactor).setServiceParent(
        service)
    TwistedLogForwarder(redirect_stdio=capture_stdout).setServiceParent(
        service)
    return service


class TetherScriptRunner(object):
    """
    Parse a script's command line, start logging and run the script until
    its result fires.  The process then exits: status 0 on success, 1 on
    failure.

    :ivar _react: ``task.react``, replaceable for tests.
    """
    _react = staticmethod(task.react)

    def __init__(self, script, options, logging=True, reactor=None,
                 sys_module=sys):
        """
        :param ICommandLineScript script: The script to run.
        :param usage.Options options: The parser for the script's options.
        :param bool logging: Whether to write Eliot messages to the
            ``logfile`` option.
        :param reactor: The reactor to run on, the global one if ``None``.
        :param sys_module: A ``sys``-like module supplying ``argv`` and
            ``stderr``.
        """
        self.script = script
        self.options = options
        self.logging = logging
        self._reactor = reactor
        self.sys_module = sys_module

    def _parse_options(self, arguments):
        """
        Parse ``arguments``, exiting with status 1 after printing usage and
        the error to stderr if they are invalid.

        :return: The parsed options.
        """
        try:
            self.options.parseOptions(arguments)
        except usage.UsageError as e:
            self.sys_module.stderr.write(str(self.options))
            self.sys_module.stderr.write(u"ERROR: {}\n".format(e))
            raise SystemExit(1)
        return self.options

    def _run(self, reactor, options):
        d = maybeDeferred(self.script.main, reactor, options)

        def failed(reason):
            if not reason.check(SystemExit):
                write_failure(reason)
            return reason
        return d.addErrback(failed)

    def main(self):
        """
        Run the script.  Never returns; raises ``SystemExit``.
        """
        # --version and --help exit here, before logging starts.
        options = self._parse_options(self.sys_module.argv[1:])

        reactor = self._reactor
        if reactor is None:
            from twisted.internet import reactor

        if self.logging:
            log_service = eliot_logging_service(
                options["logfile"], reactor, True)
        else:
            log_service = Service()
        log_service.startService()
        try:
            self._react(
                lambda reactor: self._run(reactor, options), [],
                _reactor=reactor)
        finally:
            log_service.stopService()


def main_for_service(reactor, service):
    """
    Start ``service`` now and stop it when ``reactor`` shuts down.

    :param IReactorCore reactor: The reactor whose shutdown stops the service.
    :param IService service: The service to run.

    :return: A ``Deferred`` firing once the service has finished stopping.
    """
    service.startService()
    stopped = Deferred()

    def stop():
        maybeDeferred(service.stopService).chainDeferred(stopped)

    reactor.addSystemEventTrigger("before", "shutdown", stop)
    return stopped
