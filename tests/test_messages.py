import signal

import pytest

from rdup.messages import Aborted, install_signal_handlers, msg, set_program, signal_message


def test_msg_prefix(capsys):
    set_program("rdup-tr")
    try:
        msg("hello")
    finally:
        set_program("rdup")
    assert capsys.readouterr().err == "** rdup-tr: hello\n"


def test_msg_default_program(capsys):
    msg("Will not write to a tty")
    assert capsys.readouterr().err == "** rdup: Will not write to a tty\n"


def test_signal_messages():
    assert signal_message(signal.SIGINT) == "SIGINT received, exiting"
    assert signal_message(signal.SIGPIPE) == "SIGPIPE received, exiting"
    assert signal_message(signal.SIGCHLD) is None


def test_unhandled_signal_message():
    assert "Unhandled signal" in signal_message(signal.SIGTERM)


def test_aborted_carries_signal():
    error = Aborted(signal.SIGINT)
    assert error.signum == signal.SIGINT
    assert str(error) == "SIGINT received, exiting"


def test_installed_handler_raises():
    previous = install_signal_handlers()
    try:
        assert signal.SIGINT in previous
        with pytest.raises(Aborted) as info:
            signal.raise_signal(signal.SIGINT)
        assert info.value.signum == signal.SIGINT
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)