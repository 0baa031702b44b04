"""
Pakailink (SNAP) gateway client.

Every call is a synchronous HTTP request with a bounded timeout. Failures of
any kind surface as ``GatewayError`` so callers can leave their record
Pending and retry later. The client never touches the database.
"""
import base64
import hashlib
import hmac
import json
import logging
import threading
import time
from collections import namedtuple
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from investments.exceptions import GatewayError

logger = logging.getLogger(__name__)

CHANNEL_ID = "95222"

# latestTransactionStatus / paymentFlagStatus codes
STATUS_SUCCESS = "00"
STATUS_FAILED_CODES = ("05", "06")

INQUIRY_SETTLED = "settled"
INQUIRY_PENDING = "pending"
INQUIRY_FAILED = "failed"

GatewayPayment = namedtuple("GatewayPayment", ["payment_code", "expired_at", "reference"])


def classify_status(code) -> str:
    code = (code or "").strip()
    if code == STATUS_SUCCESS:
        return INQUIRY_SETTLED
    if code in STATUS_FAILED_CODES:
        return INQUIRY_FAILED
    return INQUIRY_PENDING


class PakailinkClient:
    """Thin client for the endpoints the ledger engine depends on."""

    TOKEN_PATH = "/snap/v1.0/access-token/b2b"
    CREATE_VA_PATH = "/snap/v1.0/transfer-va/create-va"
    VA_STATUS_PATH = "/snap/v1.0/transfer-va/create-va-status"
    CREATE_QR_PATH = "/snap/v1.0/qr/qr-mpm-generate"
    QR_STATUS_PATH = "/snap/v1.0/qr/qr-mpm-status"
    BANK_TRANSFER_PATH = "/snap/v1.0/emoney/transfer-bank"
    EWALLET_TOPUP_PATH = "/snap/v1.0/emoney/topup"

    # Expected responseCode per endpoint
    OK_CODES = {
        TOKEN_PATH: "2007300",
        CREATE_VA_PATH: "2002700",
        VA_STATUS_PATH: "2003300",
        CREATE_QR_PATH: "2004700",
        QR_STATUS_PATH: "2005300",
        BANK_TRANSFER_PATH: "2004300",
        EWALLET_TOPUP_PATH: "2003800",
    }

    def __init__(self, base_url, client_key, client_secret, partner_id, private_key_path,
                 callback_url=None, merchant_id=None, store_id=None, terminal_id=None,
                 timeout=30, timezone="Asia/Jakarta", session=None):
        self.base_url = (base_url or "").rstrip("/")
        self.client_key = client_key
        self.client_secret = client_secret
        self.partner_id = partner_id
        self.private_key_path = private_key_path
        self.callback_url = callback_url
        self.merchant_id = merchant_id
        self.store_id = store_id
        self.terminal_id = terminal_id
        self.timeout = timeout
        self.tz = ZoneInfo(timezone)
        self.session = session or self._build_session()

        self._token = None
        self._token_expires = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_config(cls, config):
        return cls(
            base_url=config.get("PAKAILINK_BASE_URL"),
            client_key=config.get("PAKAILINK_CLIENT_KEY"),
            client_secret=config.get("PAKAILINK_CLIENT_SECRET"),
            partner_id=config.get("PAKAILINK_PARTNER_ID"),
            private_key_path=config.get("PAKAILINK_PRIVATE_KEY_PATH"),
            callback_url=config.get("PAKAILINK_PAYMENT_CALLBACK_URL"),
            merchant_id=config.get("PAKAILINK_MERCHANT_ID"),
            store_id=config.get("PAKAILINK_STORE_ID"),
            terminal_id=config.get("PAKAILINK_TERMINAL_ID"),
            timeout=config.get("GATEWAY_TIMEOUT", 30),
            timezone=config.get("PLATFORM_TIMEZONE", "Asia/Jakarta"),
        )

    @staticmethod
    def _build_session():
        session = requests.Session()
        # Connection errors only; POSTs are never re-sent after a response
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    # ===== signing =====

    def timestamp(self, moment=None) -> str:
        moment = moment or datetime.now(self.tz)
        return moment.astimezone(self.tz).isoformat(timespec="seconds")

    def _local_expiry(self, expires_at: datetime) -> str:
        # expires_at is naive UTC
        return self.timestamp(expires_at.replace(tzinfo=ZoneInfo("UTC")))

    def asymmetric_signature(self, string_to_sign: str) -> str:
        """RSA-SHA256 (PKCS#1 v1.5) over ``client_key|timestamp`` for the token call."""
        try:
            with open(self.private_key_path, "rb") as fh:
                key = serialization.load_pem_private_key(fh.read(), password=None)
        except (OSError, TypeError, ValueError) as e:
            raise GatewayError(detail=f"private key unavailable: {e}") from e
        signature = key.sign(string_to_sign.encode(), padding.PKCS1v15(), hashes.SHA256())
        return base64.b64encode(signature).decode()

    def symmetric_signature(self, method: str, path: str, access_token: str, body: bytes, timestamp: str) -> str:
        """HMAC-SHA512 over METHOD:PATH:TOKEN:sha256(body):TIMESTAMP."""
        body_hash = hashlib.sha256(body).hexdigest().lower()
        string_to_sign = f"{method}:{path}:{access_token}:{body_hash}:{timestamp}"
        digest = hmac.new((self.client_secret or "").encode(), string_to_sign.encode(), hashlib.sha512).digest()
        return base64.b64encode(digest).decode()

    @staticmethod
    def _external_id() -> str:
        return str(time.time_ns() % 10_000_000_000)

    # ===== transport =====

    def _send(self, path: str, body: bytes, headers: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, data=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f"Pakailink timeout on {path} after {self.timeout}s")
            raise GatewayError(detail="timeout") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Pakailink request error on {path}: {e}")
            raise GatewayError(detail=str(e)) from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Pakailink non-JSON response on {path}: HTTP {response.status_code}")
            raise GatewayError(detail=f"HTTP {response.status_code}") from e

        expected = self.OK_CODES[path]
        code = data.get("responseCode")
        if code != expected:
            logger.error(f"Pakailink {path} returned {code}: {data.get('responseMessage')}")
            raise GatewayError(detail=f"{code}: {data.get('responseMessage')}")
        return data

    def _signed_post(self, path: str, payload: dict) -> dict:
        token = self.get_access_token()
        body = json.dumps(payload, separators=(",", ":")).encode()
        timestamp = self.timestamp()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "X-TIMESTAMP": timestamp,
            "X-PARTNER-ID": self.partner_id or "",
            "X-EXTERNAL-ID": self._external_id(),
            "CHANNEL-ID": CHANNEL_ID,
            "X-SIGNATURE": self.symmetric_signature("POST", path, token, body, timestamp),
        }
        return self._send(path, body, headers)

    # ===== API =====

    def get_access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires:
                return self._token

            timestamp = self.timestamp()
            headers = {
                "Content-Type": "application/json",
                "X-TIMESTAMP": timestamp,
                "X-CLIENT-KEY": self.client_key or "",
                "X-SIGNATURE": self.asymmetric_signature(f"{self.client_key}|{timestamp}"),
            }
            data = self._send(self.TOKEN_PATH, b'{"grantType":"client_credentials"}', headers)
            token = data.get("accessToken")
            if not token:
                raise GatewayError(detail="empty access token")

            try:
                expires_in = int(data.get("expiresIn") or 900)
            except ValueError:
                expires_in = 900
            self._token = token
            # Refresh a minute early
            self._token_expires = time.monotonic() + max(expires_in - 60, 0)
            return token

    def create_virtual_account(self, order_id, customer_no, name, amount, bank_code, expires_at=None):
        expires_at = expires_at or datetime.utcnow() + timedelta(hours=24)
        payload = {
            "partnerReferenceNo": order_id,
            "customerNo": customer_no,
            "virtualAccountName": name,
            "expiredDate": self._local_expiry(expires_at),
            "totalAmount": {"value": f"{Decimal(amount):.2f}", "currency": "IDR"},
            "additionalInfo": {"callbackUrl": self.callback_url, "bankCode": bank_code},
        }
        data = self._signed_post(self.CREATE_VA_PATH, payload)
        va = data.get("virtualAccountData") or {}
        return GatewayPayment(
            payment_code=va.get("virtualAccountNo"),
            expired_at=expires_at,
            reference=(va.get("additionalInfo") or {}).get("referenceNo"),
        )

    def create_qr(self, order_id, amount, expires_at=None):
        if not (self.merchant_id and self.store_id and self.terminal_id):
            raise GatewayError(detail="QRIS merchant, store and terminal ids are required")
        expires_at = expires_at or datetime.utcnow() + timedelta(hours=24)
        payload = {
            "merchantId": self.merchant_id,
            "storeId": self.store_id,
            "terminalId": self.terminal_id,
            "partnerReferenceNo": order_id,
            "amount": {"value": f"{Decimal(amount):.2f}", "currency": "IDR"},
            "validityPeriod": self._local_expiry(expires_at),
            "additionalInfo": {"callbackUrl": self.callback_url, "type": "dinamis"},
        }
        data = self._signed_post(self.CREATE_QR_PATH, payload)
        return GatewayPayment(payment_code=data.get("qrContent"), expired_at=expires_at, reference=None)

    def inquiry(self, order_id, method="BANK") -> str:
        """Ask the gateway where a payment stands. Returns settled, pending or failed."""
        path = self.QR_STATUS_PATH if method == "QRIS" else self.VA_STATUS_PATH
        data = self._signed_post(path, {"originalPartnerReferenceNo": order_id})
        return classify_status(data.get("latestTransactionStatus"))

    def payout(self, order_id, account_number, code, amount, callback_url=None, bank_type="bank"):
        """Bank transfer or e-wallet top-up. Acceptance only; the outcome arrives by webhook."""
        value = {"value": f"{Decimal(int(amount)):.2f}", "currency": "IDR"}
        additional = {"callbackUrl": callback_url} if callback_url else {}

        if (bank_type or "bank").strip().lower() == "ewallet":
            payload = {
                "partnerReferenceNo": order_id,
                "customerNumber": account_number,
                "productCode": code,
                "amount": value,
                "additionalInfo": additional,
            }
            return self._signed_post(self.EWALLET_TOPUP_PATH, payload)

        payload = {
            "partnerReferenceNo": order_id,
            "beneficiaryAccountNumber": account_number,
            "beneficiaryBankCode": code,
            "amount": value,
            "additionalInfo": dict(additional, remark=""),
        }
        return self._signed_post(self.BANK_TRANSFER_PATH, payload)
