"""
Enveloped XML-DSig signing of serialized invoices, and artifact signers
for the Phase-2 integrity record.
"""
import base64
import hashlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature
from lxml import etree

from fta_compliance.einvoice.serializer import NAMESPACES, XML_DECLARATION, qname
from fta_compliance.utils.decorators import measure_performance


logger = logging.getLogger(__name__)

C14N_ALGORITHM = 'http://www.w3.org/2001/10/xml-exc-c14n#'
ENVELOPED_TRANSFORM = 'http://www.w3.org/2000/09/xmldsig#enveloped-signature'
DIGEST_ALGORITHM = 'http://www.w3.org/2001/04/xmlenc#sha256'
SIGNATURE_ALGORITHMS = {
    'EC': 'http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256',
    'RSA': 'http://www.w3.org/2001/04/xmldsig-more#rsa-sha256',
}

PrivateKey = Union[ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey]
PublicKey = Union[ec.EllipticCurvePublicKey, rsa.RSAPublicKey]


class SigningError(Exception):
    """Raised when a document or artifact cannot be signed"""
    pass


def load_private_key(path: Union[str, Path], password: Optional[bytes] = None) -> PrivateKey:
    """Load a PEM encoded EC or RSA private key"""
    try:
        with open(path, 'rb') as key_file:
            key = serialization.load_pem_private_key(key_file.read(), password=password)
    except (OSError, ValueError, TypeError) as e:
        raise SigningError(f"Failed to load signing key {path}: {e}") from e

    if not isinstance(key, (ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey)):
        raise SigningError(f"Unsupported key type: {type(key).__name__}")
    return key


def generate_signing_key() -> ec.EllipticCurvePrivateKey:
    """Fresh P-256 key, the curve used for e-invoice signatures"""
    return ec.generate_private_key(ec.SECP256R1())


def private_key_to_pem(key: PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _key_family(key) -> str:
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        return 'EC'
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return 'RSA'
    raise SigningError(f"Unsupported key type: {type(key).__name__}")


def _ec_size(key) -> int:
    return (key.curve.key_size + 7) // 8


def _sign_bytes(key: PrivateKey, data: bytes) -> bytes:
    if _key_family(key) == 'EC':
        # XML-DSig carries ECDSA values as fixed width r || s, not DER
        r, s = decode_dss_signature(key.sign(data, ec.ECDSA(hashes.SHA256())))
        size = _ec_size(key)
        return r.to_bytes(size, 'big') + s.to_bytes(size, 'big')
    return key.sign(data, padding.PKCS1v15(), hashes.SHA256())


def _verify_bytes(key: PublicKey, signature: bytes, data: bytes) -> None:
    if _key_family(key) == 'EC':
        size = _ec_size(key)
        if len(signature) != 2 * size:
            raise InvalidSignature("ECDSA signature has the wrong length")
        r = int.from_bytes(signature[:size], 'big')
        s = int.from_bytes(signature[size:], 'big')
        key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
    else:
        key.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())


def _canonical_bytes(element) -> bytes:
    """Exclusive C14N without comments"""
    return etree.tostring(element, method='c14n', exclusive=True, with_comments=False)


def _digest(element) -> str:
    return base64.b64encode(hashlib.sha256(_canonical_bytes(element)).digest()).decode('ascii')


def _parse(xml: str):
    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        return etree.fromstring(xml.encode('utf-8'), parser)
    except etree.XMLSyntaxError as e:
        raise SigningError(f"Document is not well-formed XML: {e}") from e


def _detach_signature(root):
    signature = root.find(qname('ds', 'Signature'))
    if signature is not None:
        root.remove(signature)
    return signature


def _build_signature(digest_value: str, signature_method: str):
    signature = etree.Element(qname('ds', 'Signature'), nsmap={'ds': NAMESPACES['ds']})
    signed_info = etree.SubElement(signature, qname('ds', 'SignedInfo'))
    etree.SubElement(signed_info, qname('ds', 'CanonicalizationMethod'), Algorithm=C14N_ALGORITHM)
    etree.SubElement(signed_info, qname('ds', 'SignatureMethod'), Algorithm=signature_method)

    reference = etree.SubElement(signed_info, qname('ds', 'Reference'), URI='')
    transforms = etree.SubElement(reference, qname('ds', 'Transforms'))
    etree.SubElement(transforms, qname('ds', 'Transform'), Algorithm=ENVELOPED_TRANSFORM)
    etree.SubElement(transforms, qname('ds', 'Transform'), Algorithm=C14N_ALGORITHM)
    etree.SubElement(reference, qname('ds', 'DigestMethod'), Algorithm=DIGEST_ALGORITHM)
    etree.SubElement(reference, qname('ds', 'DigestValue')).text = digest_value
    return signature, signed_info


@measure_performance
def sign_document(xml: str, private_key: PrivateKey) -> str:
    """
    Append an enveloped signature to a serialized document.

    Any signature already present is replaced. The signature references the
    whole document (URI="") and uses exclusive canonicalization, so standard
    XML-DSig verifiers accept it.

    Args:
        xml: Serialized document
        private_key: EC (ECDSA-SHA256) or RSA (RSA-SHA256) key

    Returns:
        Signed document string

    Raises:
        SigningError: If the document or key is unusable
    """
    root = _parse(xml)
    _detach_signature(root)

    signature_method = SIGNATURE_ALGORITHMS[_key_family(private_key)]
    signature, signed_info = _build_signature(_digest(root), signature_method)

    try:
        signature_value = _sign_bytes(private_key, _canonical_bytes(signed_info))
    except (ValueError, TypeError) as e:
        raise SigningError(f"Failed to sign document: {e}") from e

    etree.SubElement(signature, qname('ds', 'SignatureValue')).text = (
        base64.b64encode(signature_value).decode('ascii')
    )
    root.append(signature)

    logger.debug(f"Signed document with {signature_method}")
    return XML_DECLARATION + etree.tostring(root, encoding='unicode')


def verify_document(signed_xml: str, public_key: PublicKey) -> bool:
    """
    Check the enveloped signature of a document.

    Returns:
        True when the digest matches the content and the signature value
        verifies against ``public_key``
    """
    root = _parse(signed_xml)
    signature = _detach_signature(root)
    if signature is None:
        logger.warning("Document carries no signature")
        return False

    signed_info = signature.find(qname('ds', 'SignedInfo'))
    digest_value = signature.find(f"{qname('ds', 'SignedInfo')}/{qname('ds', 'Reference')}/{qname('ds', 'DigestValue')}")
    signature_value = signature.find(qname('ds', 'SignatureValue'))
    if signed_info is None or digest_value is None or signature_value is None:
        logger.warning("Signature element is incomplete")
        return False

    if digest_value.text != _digest(root):
        logger.warning("Document digest does not match signed content")
        return False

    try:
        _verify_bytes(public_key, base64.b64decode(signature_value.text or ''), _canonical_bytes(signed_info))
    except (InvalidSignature, ValueError):
        logger.warning("Signature value does not verify")
        return False
    return True


# ---------------------------------------------------------------------------
# Artifact signers
# ---------------------------------------------------------------------------

class ArtifactSigner(ABC):
    """Signs the invoice hash carried in the Phase-2 record"""

    @abstractmethod
    def sign(self, invoice_hash: str) -> str:
        """Return an encoded signature over ``invoice_hash``"""


class PlaceholderSigner(ArtifactSigner):
    """
    Stand-in used until an authority-issued certificate is provisioned.
    The output is reversible and carries no cryptographic guarantee.
    """

    SUFFIX = '::signed-by-placeholder-cert'

    def sign(self, invoice_hash: str) -> str:
        return base64.b64encode(f"{invoice_hash}{self.SUFFIX}".encode('utf-8')).decode('ascii')

    @classmethod
    def decode(cls, signature: str) -> str:
        """Recover the hash a placeholder signature was made over"""
        text = base64.b64decode(signature).decode('utf-8')
        if not text.endswith(cls.SUFFIX):
            raise SigningError("Not a placeholder signature")
        return text[:-len(cls.SUFFIX)]


class EcdsaArtifactSigner(ArtifactSigner):
    """ECDSA-SHA256 over the hash, without a certificate chain"""

    def __init__(self, private_key: Optional[ec.EllipticCurvePrivateKey] = None):
        self.private_key = private_key or generate_signing_key()

    def sign(self, invoice_hash: str) -> str:
        signature = self.private_key.sign(invoice_hash.encode('utf-8'), ec.ECDSA(hashes.SHA256()))
        return base64.b64encode(signature).decode('ascii')

    def verify(self, invoice_hash: str, signature: str) -> bool:
        try:
            self.private_key.public_key().verify(
                base64.b64decode(signature), invoice_hash.encode('utf-8'), ec.ECDSA(hashes.SHA256())
            )
        except (InvalidSignature, ValueError):
            return False
        return True
