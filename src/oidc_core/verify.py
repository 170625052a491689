"""JWS signature verification for RS256 and HS256 tokens."""

import logging
from typing import Union

from jwcrypto import jwk
from jwt.algorithms import HMACAlgorithm, RSAAlgorithm

from .errors import InvalidTokenError

logger = logging.getLogger(__name__)

# Only these algorithms are ever accepted; "none" and the other HMAC/RSA
# variants are rejected before any key is resolved
ALLOWED_ALGORITHMS = frozenset(["RS256", "HS256"])


class SignatureVerifier:
    """Check a token signature against its signing input.

    RS256 keys are jwcrypto JWKs (as returned by KeyProvider); HS256 keys are
    the shared client secret. The HMAC comparison is constant time.
    """

    def verify(
        self,
        signing_input: bytes,
        signature: bytes,
        algorithm: str,
        key: Union[jwk.JWK, str, bytes],
    ) -> None:
        """Verify signature over signing_input.

        Args:
            signing_input: ASCII bytes of "<header>.<payload>".
            signature: Decoded signature bytes.
            algorithm: RS256 or HS256.
            key: Public JWK for RS256, shared secret for HS256.

        Raises:
            InvalidTokenError: If the algorithm is unsupported, the key is
                unusable, or the signature does not match.
        """
        if not isinstance(algorithm, str) or algorithm not in ALLOWED_ALGORITHMS:
            raise InvalidTokenError(
                "unsupported_algorithm",
                f"Invalid or unsupported algorithm: {algorithm}",
            )

        try:
            if algorithm == "RS256":
                verifier = RSAAlgorithm(RSAAlgorithm.SHA256)
                prepared = verifier.from_jwk(key.export_public())
            else:
                verifier = HMACAlgorithm(HMACAlgorithm.SHA256)
                prepared = verifier.prepare_key(key)
            valid = verifier.verify(signing_input, prepared, signature)
        except Exception as e:
            logger.warning(f"Signature verification failed: unusable {algorithm} key - {e}")
            raise InvalidTokenError("invalid_signature", "Invalid token signature")

        if not valid:
            logger.warning(f"Signature verification failed for {algorithm} token")
            raise InvalidTokenError("invalid_signature", "Invalid token signature")
