from passlib.context import CryptContext

_otp_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_code(code: str) -> str:
    return _otp_context.hash(code)


def verify_code_hash(code: str, code_hash: str) -> bool:
    return _otp_context.verify(code, code_hash)
