import re
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from nodekeeper.errors import RemoteExecutionError
from nodekeeper.remote import windows
from nodekeeper.remote.transport import Session, Transport
from nodekeeper.utils.retry import PollSettings

# ----------------- Fake Windows hosts -----------------

class FakeHost:
    def __init__(self, address, hostname="WIN-DEFAULT"):
        self.address = address
        self.hostname = hostname
        self.files = {}          # remote path -> text
        self.commands = []
        self.failing = {}        # command -> exception raised by run()
        self.dial_errors = []    # raised in order by _dial before a session is handed out
        self.drop_transfers = False
        self.dials = 0
        self.sessions = []
        self._pending_name = None


class FakeSession(Session):
    def __init__(self, host):
        self.host = host
        self.address = host.address
        self.closed = False

    def run(self, command):
        self.host.commands.append(command)
        if command in self.host.failing:
            raise self.host.failing[command]
        if command == windows.hostname():
            return self.host.hostname + "\r\n"
        if "Get-Content" in command:
            for path, content in self.host.files.items():
                if command == windows.get_content(path):
                    return content
            raise RemoteExecutionError("Get-Content failed", output="Cannot find path", exit_code=1)
        m = re.search(r"Rename-Computer -NewName '([^']*)'", command)
        if m:
            self.host._pending_name = m.group(1)
        elif command.startswith("shutdown.exe") and self.host._pending_name:
            self.host.hostname = self.host._pending_name
            self.host._pending_name = None
        return ""

    def transfer(self, reader, filename, remote_dir):
        path = windows.remote_path(remote_dir, filename)
        data = reader.read()
        if not self.host.drop_transfers:
            self.host.files[path] = data.decode("utf-8")
        return path

    def close(self):
        self.closed = True


class FakeTransport(Transport):
    def __init__(self, hosts, poll_settings=PollSettings(interval=0, timeout=0)):
        super().__init__(poll_settings)
        self.hosts = hosts

    def _dial(self, address, username, credential):
        host = self.hosts[address]
        host.dials += 1
        if host.dial_errors:
            raise host.dial_errors.pop(0)
        session = FakeSession(host)
        host.sessions.append(session)
        return session


@pytest.fixture
def hosts():
    return {}


@pytest.fixture
def add_host(hosts):
    def _add(address, **kw):
        host = FakeHost(address, **kw)
        hosts[address] = host
        return host
    return _add


@pytest.fixture
def transport(hosts):
    return FakeTransport(hosts)


# ----------------- Events -----------------

class Capture:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def of(self, cls):
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture
def capture():
    return Capture()


# ----------------- Certificates -----------------

@pytest.fixture
def make_cert():
    """Self-signed PEM certificate; pass not_after in the past for an expired one."""
    def _make(cn, not_after=None):
        now = datetime.now(timezone.utc)
        not_after = not_after or now + timedelta(days=365)
        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(min(now, not_after) - timedelta(days=1))
            .not_valid_after(not_after)
            .sign(key, hashes.SHA256())
        )
        return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    return _make
