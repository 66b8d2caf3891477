"""Packing daily watch logs and delivering them over SMTP."""

from __future__ import annotations

import base64
import io
import os
import secrets
import smtplib
import socket
import ssl
import time
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, Iterator, Optional, Sequence, Union

DEFAULT_DIAL_TIMEOUT = 30.0
_BASE64_CHUNK = 57  # 57 raw bytes become one 76-character base64 line

Day = Union[date, datetime]


class EmptyLogError(Exception):
    """The log file for the requested day exists but is empty."""

    def __init__(self, message: str = "log file is empty") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class PlainAuth:
    """Credentials for the SMTP PLAIN mechanism, bound to one host."""

    identity: str
    username: str
    password: str
    host: str


@dataclass
class SMTPConfig:
    """SMTP connection and recipient settings; dial_timeout is in seconds (0 = 30s)."""

    host: str
    port: int
    username: str
    password: str
    sender: str
    to: list[str] = field(default_factory=list)
    dial_timeout: float = 0.0


@dataclass
class ReportOptions:
    """Which log to pack and the text of the mail."""

    log_dir: str
    day: Optional[Day]
    subject: str
    body: str


SendMailFunc = Callable[[str, PlainAuth, str, Sequence[str], bytes], None]


def send_gmail(cfg: SMTPConfig, opts: ReportOptions, send_fn: Optional[SendMailFunc] = None) -> None:
    """Pack the watch log of the given day and mail it.

    A missing or empty log is not an error: the mail goes out without attachment.
    """
    if send_fn is None:
        send_fn = dial_and_send(cfg.dial_timeout)

    opts = replace(opts, body=opts.body.strip())
    _validate(cfg, opts)

    try:
        archive, zip_name = build_log_archive(opts.log_dir, opts.day)
    except (FileNotFoundError, EmptyLogError):
        archive, zip_name = b"", ""

    msg = build_mime_message(cfg.sender, cfg.to, opts.subject, opts.body, zip_name, archive)
    addr = _join_host_port(cfg.host, cfg.port)
    auth = PlainAuth("", cfg.username, cfg.password, cfg.host)
    send_fn(addr, auth, cfg.sender, cfg.to, msg)


def send_text_mail(
    cfg: SMTPConfig, subject: str, body: str, send_fn: Optional[SendMailFunc] = None
) -> None:
    """Send a plain-text mail without attachment."""
    if send_fn is None:
        send_fn = dial_and_send(cfg.dial_timeout)
    if not cfg.host.strip():
        raise ValueError("SMTP host is required")
    if cfg.port <= 0:
        raise ValueError("SMTP port is required")
    if not cfg.username.strip():
        raise ValueError("SMTP username is required")
    if not cfg.password.strip():
        raise ValueError("SMTP password is required")
    sender = cfg.sender.strip() or cfg.username
    if not cfg.to:
        raise ValueError("at least one recipient is required")
    if not subject.strip():
        raise ValueError("subject is required")

    msg = build_mime_message(sender, cfg.to, subject, body, "", b"")
    addr = _join_host_port(cfg.host, cfg.port)
    auth = PlainAuth("", cfg.username, cfg.password, cfg.host)
    send_fn(addr, auth, sender, cfg.to, msg)


def dial_and_send(dial_timeout: float = 0.0) -> SendMailFunc:
    """Return a sender whose timeout bounds both the TCP connect and the whole SMTP exchange."""
    timeout = dial_timeout if dial_timeout and dial_timeout > 0 else DEFAULT_DIAL_TIMEOUT
    label = _format_duration(timeout)

    def send(addr: str, auth: Optional[PlainAuth], sender: str, to: Sequence[str], msg: bytes) -> None:
        deadline = time.monotonic() + timeout
        host, port = _split_host_port(addr)
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            raise ConnectionError(f"SMTP 連線失敗（逾時={label}）：{exc}") from exc

        client = _AttachedSMTP(sock, timeout)
        try:
            _exchange(client, deadline, host, port, auth, sender, to, msg)
        finally:
            client.close()
            sock.close()

    return send


def build_log_archive(log_dir: str, day: Optional[Day]) -> tuple[bytes, str]:
    """Zip the watch log of the given day; return the archive bytes and its file name."""
    trimmed = log_dir.strip()
    if not trimmed:
        raise ValueError("logDir is required")
    if day is None:
        raise ValueError("day is required")

    target_day = _local_day(day)
    log_name = f"watch_{target_day.strftime('%Y-%m-%d')}.log"
    log_path = os.path.abspath(os.path.join(trimmed, log_name))

    stat = os.stat(log_path)
    if os.path.isdir(log_path):
        raise IsADirectoryError(f"log path is a directory: {log_path}")
    if stat.st_size == 0:
        raise EmptyLogError()

    with open(log_path, "rb") as handle:
        data = handle.read()

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(os.path.basename(log_path), data)

    zip_name = f"watch-log-{target_day.strftime('%Y%m%d')}.zip"
    return buffer.getvalue(), zip_name


def build_mime_message(
    sender: str,
    to: Sequence[str],
    subject: str,
    body: str,
    attachment_name: str,
    attachment: Optional[bytes],
) -> bytes:
    """Build the raw mail; multipart with a zip attachment when one is given."""
    if not to:
        raise ValueError("missing recipients")
    if not sender.strip():
        raise ValueError("missing from")
    if not subject.strip():
        raise ValueError("missing subject")

    # Headers go out in a fixed order; strict servers reject shuffled ones.
    headers = [
        f"From: {sender}",
        f"To: {', '.join(to)}",
        f"Subject: {_encode_subject(subject)}",
        "MIME-Version: 1.0",
    ]

    if not attachment:
        lines = headers + [
            "Content-Type: text/plain; charset=UTF-8",
            "Content-Transfer-Encoding: 7bit",
            "",
            body,
        ]
        return ("\r\n".join(lines) + "\r\n").encode("utf-8")

    boundary = _random_boundary()
    parts = "\r\n".join(headers + [f"Content-Type: multipart/mixed; boundary={boundary}", ""]) + "\r\n"
    parts += (
        f"--{boundary}\r\n"
        "Content-Type: text/plain; charset=UTF-8\r\n"
        "Content-Transfer-Encoding: 7bit\r\n\r\n"
        f"{body}\r\n\r\n"
    )
    parts += (
        f"--{boundary}\r\n"
        "Content-Type: application/zip\r\n"
        f'Content-Disposition: attachment; filename="{attachment_name}"\r\n'
        "Content-Transfer-Encoding: base64\r\n\r\n"
        f"{_encode_base64_lines(attachment)}"
        f"\r\n--{boundary}--\r\n"
    )
    return parts.encode("utf-8")


def _validate(cfg: SMTPConfig, opts: ReportOptions) -> None:
    if not cfg.host.strip():
        raise ValueError("SMTP host is required")
    if cfg.port <= 0:
        raise ValueError("SMTP port is required")
    if not cfg.username.strip():
        raise ValueError("SMTP username is required")
    if not cfg.password.strip():
        raise ValueError("SMTP password is required")
    if not cfg.sender.strip():
        raise ValueError("from is required")
    if not cfg.to:
        raise ValueError("at least one recipient is required")
    if any(not recipient.strip() for recipient in cfg.to):
        raise ValueError("recipient is required")
    if not opts.log_dir.strip():
        raise ValueError("logDir is required")
    if opts.day is None:
        raise ValueError("day is required")
    if not opts.subject.strip():
        raise ValueError("subject is required")
    if not opts.body.strip():
        raise ValueError("body is required")


def _local_day(day: Day) -> Day:
    if isinstance(day, datetime) and day.tzinfo is not None:
        return day.astimezone()
    return day


def _encode_subject(subject: str) -> str:
    if subject.isascii():
        return subject
    encoded = base64.b64encode(subject.encode("utf-8")).decode("ascii")
    return f"=?UTF-8?B?{encoded}?="


def _encode_base64_lines(data: bytes) -> str:
    return "".join(
        base64.b64encode(data[start:start + _BASE64_CHUNK]).decode("ascii") + "\r\n"
        for start in range(0, len(data), _BASE64_CHUNK)
    )


def _random_boundary() -> str:
    return f"xw-{secrets.token_hex(12)}"


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _split_host_port(addr: str) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


def _format_duration(seconds: float) -> str:
    if seconds >= 1:
        return f"{seconds:g}s"
    return f"{seconds * 1000:g}ms"


def _is_localhost(name: str) -> bool:
    return name in ("localhost", "127.0.0.1", "::1")


class _AttachedSMTP(smtplib.SMTP):
    """SMTP client that talks over a socket connected beforehand."""

    def __init__(self, sock: socket.socket, timeout: float) -> None:
        self._attached_sock = sock
        super().__init__(local_hostname="localhost", timeout=timeout)

    def _get_socket(self, host, port, timeout):
        return self._attached_sock


@contextmanager
def _step(label: str) -> Iterator[None]:
    try:
        yield
    except (OSError, smtplib.SMTPException) as exc:
        raise smtplib.SMTPException(f"{label}：{exc}") from exc


def _plain_responder(auth: PlainAuth) -> Callable[..., str]:
    def respond(challenge: Optional[bytes] = None) -> str:
        return f"{auth.identity}\0{auth.username}\0{auth.password}"

    return respond


def _exchange(
    client: _AttachedSMTP,
    deadline: float,
    host: str,
    port: int,
    auth: Optional[PlainAuth],
    sender: str,
    to: Sequence[str],
    msg: bytes,
) -> None:
    def arm() -> None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError("SMTP exchange timed out")
        if client.sock is not None:
            client.sock.settimeout(remaining)

    with _step("建立 SMTP client 失敗"):
        arm()
        code, resp = client.connect(host, port)
        if code != 220:
            raise smtplib.SMTPConnectError(code, resp)

    # A failed greeting shows up at MAIL FROM, which says hello again.
    try:
        arm()
        client.ehlo_or_helo_if_needed()
    except (OSError, smtplib.SMTPException):
        pass

    tls_active = False
    if client.has_extn("starttls"):
        with _step("STARTTLS 失敗"):
            arm()
            client.starttls(context=ssl.create_default_context())
            client.ehlo()
        tls_active = True

    if auth is not None and client.has_extn("auth"):
        with _step("SMTP 認證失敗"):
            if not tls_active and not _is_localhost(host):
                raise smtplib.SMTPException("unencrypted connection")
            if host != auth.host:
                raise smtplib.SMTPException("wrong host name")
            arm()
            client.auth("PLAIN", _plain_responder(auth), initial_response_ok=True)

    with _step("MAIL FROM 失敗"):
        arm()
        client.ehlo_or_helo_if_needed()
        code, resp = client.mail(sender)
        if code != 250:
            raise smtplib.SMTPResponseException(code, resp)

    for recipient in to:
        with _step(f"RCPT TO {recipient} 失敗"):
            arm()
            code, resp = client.rcpt(recipient)
            if code not in (250, 251):
                raise smtplib.SMTPResponseException(code, resp)

    arm()
    try:
        code, resp = client.data(msg)
    except smtplib.SMTPDataError as exc:
        raise smtplib.SMTPException(f"DATA 指令失敗：{exc}") from exc
    except (OSError, smtplib.SMTPException) as exc:
        raise smtplib.SMTPException(f"寫入郵件內容失敗：{exc}") from exc
    if code != 250:
        raise smtplib.SMTPException(f"結束郵件內容失敗：{code} {resp!r}")

    arm()
    client.quit()