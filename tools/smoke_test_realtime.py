#!/usr/bin/env python3
"""Smoke test: real-time message relay against a running server.

What it checks
- Can register/login two users.
- Can connect both to Socket.IO and authenticate with the login token.
- Online relay works (A -> B delivers new-message with sent=false, A gets the echo).
- Offline send is persisted (B offline, A sends, B lists it with sent=false, read=false).

Usage:
  python tools/smoke_test_realtime.py --base http://127.0.0.1:3000

Tip:
  Run the server first in another terminal.
"""

from __future__ import annotations

import argparse
import os
import random
import string
import threading
from dataclasses import dataclass, field

import requests
import socketio


def _rand_suffix(n: int = 6) -> str:
    return "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(n))


def register_and_login(session: requests.Session, base: str, username: str, password: str) -> tuple[str, str]:
    r = session.post(f"{base}/register", json={"username": username, "password": password}, timeout=10)
    if r.status_code not in (200, 409):
        raise RuntimeError(f"register failed: {r.status_code} {r.text[:200]}")

    r = session.post(f"{base}/login", json={"username": username, "password": password}, timeout=10)
    r.raise_for_status()
    body = r.json()
    session.headers["Authorization"] = body["token"]
    return body["id"], body["token"]


@dataclass
class SioWrap:
    sio: socketio.Client
    received: list = field(default_factory=list)
    event: threading.Event = field(default_factory=threading.Event)


def make_client(base: str, token: str) -> SioWrap:
    wrap = SioWrap(sio=socketio.Client(logger=False, engineio_logger=False))

    @wrap.sio.on("new-message")
    def _on_message(data):
        wrap.received.append(data)
        wrap.event.set()

    wrap.sio.connect(base, transports=["websocket"], wait_timeout=10)
    ack = wrap.sio.call("authenticate", token, timeout=10)
    if not (isinstance(ack, dict) and ack.get("success")):
        raise RuntimeError(f"authenticate failed: {ack}")
    return wrap


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--base", default=os.environ.get("MIMIGRAM_BASE", "http://127.0.0.1:3000"))
    ap.add_argument("--user-a", default=f"smokea_{_rand_suffix()}")
    ap.add_argument("--user-b", default=f"smokeb_{_rand_suffix()}")
    ap.add_argument("--password", default="TestPassw0rd!123")
    args = ap.parse_args()

    base = args.base.rstrip("/")

    sa = requests.Session()
    sb = requests.Session()
    a_id, a_token = register_and_login(sa, base, args.user_a, args.password)
    b_id, b_token = register_and_login(sb, base, args.user_b, args.password)
    sa.post(f"{base}/addChat", json={"username": args.user_b}, timeout=10).raise_for_status()

    A = make_client(base, a_token)
    B = make_client(base, b_token)
    try:
        # 1) Online relay
        r = sa.post(f"{base}/sendMessage", json={"chatId": b_id, "text": "online hello"}, timeout=10)
        r.raise_for_status()
        if not B.event.wait(10):
            print("❌ Online message not received by B")
            return 2
        if B.received[-1]["message"].get("sent") is not False:
            print(f"❌ B got sent!=false: {B.received[-1]}")
            return 3
        if not A.event.wait(10) or A.received[-1]["message"].get("sent") is not True:
            print("❌ A did not get its echo with sent=true")
            return 4
        print("✅ Online relay OK")

        # 2) Offline send is persisted
        B.sio.disconnect()
        r = sa.post(f"{base}/sendMessage", json={"chatId": b_id, "text": "offline hello"}, timeout=10)
        r.raise_for_status()
        listed = sb.get(f"{base}/messages/{a_id}", timeout=10).json()
        last = listed[-1] if listed else {}
        if last.get("text") != "offline hello" or last.get("sent") is not False or last.get("read") is not False:
            print(f"❌ Offline message not listed as expected: {last}")
            return 5
        print("✅ Offline persistence OK")

        print("\n🎉 Smoke test PASSED")
        return 0
    finally:
        for wrap in (A, B):
            if wrap.sio.connected:
                wrap.sio.disconnect()


if __name__ == "__main__":
    raise SystemExit(main())
