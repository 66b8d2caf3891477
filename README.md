# xwatch

Library components for a service that watches a folder tree and reports on
what changed.

## Modules

### `xwatch.paths`

Finds and creates the data directory under `%ProgramData%`.

- `data_dir()` returns `<ProgramData>/go-xwatch` without creating it. It
  raises `RuntimeError` when the `ProgramData` environment variable is empty.
- `ensure_data_dir()` creates that directory if needed and returns its path.
- `data_dir_for_suffix(suffix)` returns `<ProgramData>/go-xwatch/<suffix>`.
  A blank suffix gives the base directory.
- `ensure_data_dir_for_suffix(suffix)` creates that directory and returns it.

### `xwatch.mailer`

Packs one day's watch log and mails it.

- `build_log_archive(log_dir, day)` zips `watch_YYYY-MM-DD.log` from
  `log_dir` and returns `(archive_bytes, "watch-log-YYYYMMDD.zip")`. It raises
  `FileNotFoundError` when the log is missing and `EmptyLogError` when the log
  is empty.
- `build_mime_message(sender, to, subject, body, attachment_name, attachment)`
  builds the raw message with headers in a fixed order. A subject that is not
  ASCII is encoded as `=?UTF-8?B?...?=`. With an attachment the message is
  `multipart/mixed` and holds a base64 `application/zip` part. Without one it
  is plain text.
- `send_gmail(cfg, opts, send_fn)` checks the settings and raises
  `ValueError` for any required field that is missing. It then packs the log
  for `opts.day` and sends the message. A missing or empty log is left out of
  the message and does not stop it being sent.
- `send_text_mail(cfg, subject, body, send_fn)` sends a plain-text message
  without an attachment. The sender defaults to the SMTP username.
- `dial_and_send(dial_timeout)` returns the default sender. It connects over
  TCP and uses STARTTLS when the server offers it. It logs in with PLAIN when
  the server offers AUTH, then delivers the message. `dial_timeout` is in
  seconds, and 0 means 30 s. The timeout limits the connect step and the
  whole SMTP exchange. A failed connect raises `ConnectionError`. A failure
  in a later step raises `smtplib.SMTPException`.

The settings go in the dataclasses `SMTPConfig` (`host`, `port`, `username`,
`password`, `sender`, `to`, `dial_timeout`) and `ReportOptions` (`log_dir`,
`day`, `subject`, `body`). A `send_fn` is a callable taking
`(addr, auth, sender, to, msg)`, where `auth` is a `PlainAuth`. Pass
`send_fn=None` to use the default sender; pass your own callable to capture
messages in tests.

### `xwatch.pipeline`

Moves watch events on their way to a sink.

- `Entry`: one change record (`ts`, `op`, `path`, `is_dir`, `size`).
- `Aggregator`: `add(event)` keeps only the last event for each path.
  `flush()` returns the entries sorted by timestamp and clears them.
- `EventSink`: the abstract base class. Its `handle(entries)` method raises
  when it fails.
- `FuncSink`: wraps a plain callable as a sink.
- `MultiSink`: passes each batch to several sinks in turn and stops at the
  first failure, which it raises as `SinkError`.
- `Writer(sink, logger=None, base_backoff=0.5, max_backoff=5.0)`:
  - `enqueue(entries)` adds entries to a pending buffer.
  - `flush(now=None)` writes that buffer to the sink. After a failure it
    waits before trying again, and the wait doubles each time up to
    `max_backoff`.
  - `close()` makes a last flush and then closes the sink if it has a
    `close()` method.
- `BufferedSink(sink, window=5.0, max_batch=512)`:
  - It forwards a batch once `max_batch` entries are buffered, or once
    `window` seconds have passed since the first buffered entry.
  - When forwarding fails, the entries go back into the buffer and the error
    is raised.
  - `close()` forwards whatever is left in the buffer.

## Example

```python
from datetime import datetime
from xwatch.mailer import SMTPConfig, ReportOptions, send_gmail

password = "password"
cfg = SMTPConfig(
    host="smtp.example.com",
    port=587,
    username="reporter@example.com",
    password=password,
    sender="reporter@example.com",
    to=["ops@example.com"],
)
opts = ReportOptions(
    log_dir="/var/lib/xwatch/xwatch-watch-logs",
    day=datetime(2026, 3, 2),
    subject="Watch log 2026-03-02",
    body="Log attached.",
)
send_gmail(cfg, opts, None)
```

## What this package does not do

- It has no command-line interface and no long-running service.
- It does not watch the file system. `Aggregator.add` takes event objects
  from the caller; each event needs `path`, `op`, `ts`, `is_dir` and `size`.
- It has no journal storage. Entries go only to the sinks you supply.
- It does not schedule mail and does not read mail settings from a
  configuration file.
- `ensure_data_dir` only creates the directory. It does not set access
  permissions on it.

## Tests

```
pip install -e .[test]
pytest
```