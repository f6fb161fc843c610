"""Drive scanner-like traffic against a running sensor for manual checks."""

from __future__ import annotations

import argparse
import time
from typing import Any, Callable, Dict, List, Sequence

import requests

DEFAULT_TARGET = "http://localhost:8080"
DEFAULT_DELAY = 0.2
REQUEST_TIMEOUT = 3

COMMON_PASSWORDS = ["admin", "123456", "password", "drupal", "letmein"]

NODE_PAYLOAD = (
    '{"link":[{"value":"link","options":"O:24:\\"GuzzleHttp\\\\Psr7\\\\FnStream\\":0:{}"}],'
    '"_links":{"type":{"href":"/rest/type/shortcut/default"}}}'
)


def send(method: str, url: str, **kwargs: Any) -> int:
    """Fire one request at the sensor; returns the status, 0 if it never answered."""
    try:
        response = requests.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
    except requests.RequestException as exc:
        print(f"{method} {url} failed: {exc}")
        return 0
    print(f"{method} {url} -> {response.status_code}")
    return response.status_code


def pause(pace: float) -> None:
    if pace > 0:
        time.sleep(DEFAULT_DELAY * pace)


def simulate_changelog(base_url: str, pace: float) -> None:
    print("[Version scan] Fetching CHANGELOG.txt, then browsing")
    send("GET", f"{base_url}/CHANGELOG.txt")
    pause(pace)
    send("GET", f"{base_url}/")


def simulate_node_exploit(base_url: str, pace: float) -> None:
    print("[CVE-2019-6340] Posting a serialized payload to the REST node endpoint")
    send(
        "POST",
        f"{base_url}/node/1?_format=hal_json",
        data=NODE_PAYLOAD,
        headers={"Content-Type": "application/hal+json"},
    )
    pause(pace)


def simulate_login(base_url: str, pace: float) -> None:
    print("[Login] Password spray against /user/login")
    send("GET", f"{base_url}/user/login")
    for password in COMMON_PASSWORDS:
        send("POST", f"{base_url}/user/login", data={"name": "admin", "pass": password, "form_id": "user_login_form"})
        pause(pace)


SCENARIOS: Dict[str, Callable[[str, float], None]] = {
    "changelog": simulate_changelog,
    "node": simulate_node_exploit,
    "login": simulate_login,
}


def run_scenarios(target: str, scenarios: Sequence[str], pace: float = 1.0) -> List[str]:
    """Run the named scenarios in order; unknown names are skipped."""
    base_url = target.rstrip("/")
    executed = [name for name in scenarios if name in SCENARIOS]
    for name in executed:
        SCENARIOS[name](base_url, pace)
    return executed


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Send scanner-like traffic to a Drupot sensor")
    parser.add_argument("--target", default=DEFAULT_TARGET)
    parser.add_argument(
        "scenarios", nargs="*", metavar="SCENARIO",
        help=f"any of {', '.join(sorted(SCENARIOS))} (default: all)",
    )
    parser.add_argument("--pace", type=float, default=1.0, help="delay multiplier, 0 sends back to back")
    args = parser.parse_args(argv)
    executed = run_scenarios(args.target, args.scenarios or list(SCENARIOS), args.pace)
    skipped = sorted(set(args.scenarios) - set(executed))
    if skipped:
        print(f"Skipped unknown scenarios: {', '.join(skipped)}")
    print(f"Finished: {', '.join(executed)}. Check the broker or event log for events.")


if __name__ == "__main__":
    main()
