from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Sequence

from asn1crypto import algos, core, csr, keys, pem, x509

# OpenSSL short names accepted in slash-delimited subjects.
SUBJECT_ATTRIBUTE_NAMES: dict[str, str] = {
    "CN": "common_name",
    "O": "organization_name",
    "OU": "organizational_unit_name",
    "C": "country_name",
    "ST": "state_or_province_name",
    "L": "locality_name",
    "STREET": "street_address",
    "EMAILADDRESS": "email_address",
    "SERIALNUMBER": "serial_number",
    "DC": "domain_component",
    "TITLE": "title",
    "GN": "given_name",
    "SN": "surname",
    "INITIALS": "initials",
    "PSEUDONYM": "pseudonym",
    "POSTALCODE": "postal_code",
}

_SHORT_NAMES: dict[str, str] = {
    "common_name": "CN",
    "organization_name": "O",
    "organizational_unit_name": "OU",
    "country_name": "C",
    "state_or_province_name": "ST",
    "locality_name": "L",
    "street_address": "STREET",
    "email_address": "emailAddress",
    "serial_number": "serialNumber",
    "domain_component": "DC",
    "title": "title",
    "given_name": "GN",
    "surname": "SN",
    "initials": "initials",
    "pseudonym": "pseudonym",
    "postal_code": "postalCode",
}

_PRINTABLE_ATTRIBUTES = {"country_name", "serial_number"}

_KEY_USAGE_NAMES: dict[str, str] = {
    "digitalsignature": "digital_signature",
    "nonrepudiation": "non_repudiation",
    "contentcommitment": "non_repudiation",
    "keyencipherment": "key_encipherment",
    "dataencipherment": "data_encipherment",
    "keyagreement": "key_agreement",
    "keycertsign": "key_cert_sign",
    "crlsign": "crl_sign",
    "encipheronly": "encipher_only",
    "decipheronly": "decipher_only",
}

_EXTENDED_KEY_USAGE_NAMES: dict[str, str] = {
    "serverauth": "server_auth",
    "clientauth": "client_auth",
    "codesigning": "code_signing",
    "emailprotection": "email_protection",
    "timestamping": "time_stamping",
    "ocspsigning": "ocsp_signing",
}

_GENERAL_NAME_TYPES: dict[str, str] = {
    "dns": "dns_name",
    "email": "rfc822_name",
    "uri": "uniform_resource_identifier",
    "ip": "ip_address",
}

_SIGNATURE_ALGORITHMS: dict[str, str] = {
    "sha1": "sha1_rsa",
    "sha224": "sha224_rsa",
    "sha256": "sha256_rsa",
    "sha384": "sha384_rsa",
    "sha512": "sha512_rsa",
}


def normalize_hash_name(hash_algorithm: str) -> str:
    return hash_algorithm.strip().lower().replace("-", "").replace("_", "")


def supported_signature_hashes() -> tuple[str, ...]:
    return tuple(sorted(_SIGNATURE_ALGORITHMS.keys()))


def parse_subject(subject: str) -> list[tuple[str, str]]:
    """
    Split ``/CN=x/O=y/C=z`` into ordered ``(name, value)`` pairs.

    Each segment is split on its first ``=``; segments missing a name or a
    value are dropped.
    """
    attributes: list[tuple[str, str]] = []
    for segment in subject.split("/"):
        name, separator, value = segment.partition("=")
        name = name.strip()
        if not separator or not name or not value:
            continue
        attributes.append((name, value))
    return attributes


def _name_value(attribute_type: str, value: str) -> Any:
    if attribute_type == "email_address":
        return x509.EmailAddress(value)
    if attribute_type == "domain_component":
        return x509.DNSName(value)
    if attribute_type in _PRINTABLE_ATTRIBUTES:
        return x509.DirectoryString(
            name="printable_string", value=core.PrintableString(value)
        )
    return x509.DirectoryString(name="utf8_string", value=core.UTF8String(value))


def build_subject_name(attributes: Sequence[tuple[str, str]]) -> x509.Name:
    """Encode attributes one per RDN, keeping the caller's order."""
    if not attributes:
        raise ValueError("Subject must contain at least one NAME=value attribute.")
    rdns: list[x509.RelativeDistinguishedName] = []
    for short_name, value in attributes:
        attribute_type = SUBJECT_ATTRIBUTE_NAMES.get(short_name.upper())
        if attribute_type is None:
            available = ", ".join(sorted(_SHORT_NAMES.values()))
            raise ValueError(
                f"Unsupported subject attribute '{short_name}'. Available: {available}"
            )
        if attribute_type == "country_name" and len(value.strip()) != 2:
            raise ValueError("C must be a 2-letter ISO country code.")
        rdns.append(
            x509.RelativeDistinguishedName(
                [
                    x509.NameTypeAndValue(
                        {"type": attribute_type, "value": _name_value(attribute_type, value)}
                    )
                ]
            )
        )
    return x509.Name(name="", value=x509.RDNSequence(rdns))


def describe_subject(name: x509.Name) -> list[tuple[str, str]]:
    described: list[tuple[str, str]] = []
    for rdn in name.chosen:
        for type_and_value in rdn:
            attribute_type = type_and_value["type"].native
            described.append(
                (
                    _SHORT_NAMES.get(attribute_type, attribute_type),
                    type_and_value["value"].native,
                )
            )
    return described


def _split_list(value: str | Iterable[str]) -> list[str]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [item.strip() for item in items if item and item.strip()]


def _split_critical(value: str | Iterable[str] | bool) -> tuple[bool, list[str]]:
    if isinstance(value, bool):
        return False, ["CA:TRUE" if value else "CA:FALSE"]
    items = _split_list(value)
    critical = bool(items) and items[0].lower() == "critical"
    return critical, items[1:] if critical else items


def _basic_constraints(items: list[str]) -> x509.BasicConstraints:
    constraints: dict[str, bool | int] = {"ca": False}
    for item in items:
        key, _, raw = item.partition(":")
        key = key.strip().lower()
        raw = raw.strip()
        if key == "ca":
            if raw.upper() not in {"TRUE", "FALSE"}:
                raise ValueError(f"basicConstraints CA must be TRUE or FALSE, got: {raw}")
            constraints["ca"] = raw.upper() == "TRUE"
        elif key == "pathlen":
            try:
                path_length = int(raw)
            except ValueError as exc:
                raise ValueError(f"pathlen must be an integer, got: {raw}") from exc
            if path_length < 0:
                raise ValueError("pathlen must be >= 0 when provided.")
            constraints["path_len_constraint"] = path_length
        else:
            raise ValueError(f"Unsupported basicConstraints field: {item}")
    if "path_len_constraint" in constraints and not constraints["ca"]:
        raise ValueError("pathlen is only valid with CA:TRUE.")
    return x509.BasicConstraints(constraints)


def _lookup_names(items: list[str], table: Mapping[str, str], label: str) -> list[str]:
    resolved: list[str] = []
    for item in items:
        name = table.get(item.replace("_", "").replace(" ", "").lower())
        if name is None:
            available = ", ".join(sorted(table.keys()))
            raise ValueError(f"Unsupported {label} value '{item}'. Available: {available}")
        resolved.append(name)
    if not resolved:
        raise ValueError(f"{label} requires at least one value.")
    return resolved


def _general_names(items: list[str]) -> x509.GeneralNames:
    names: list[x509.GeneralName] = []
    for item in items:
        kind, separator, value = item.partition(":")
        name_type = _GENERAL_NAME_TYPES.get(kind.strip().lower())
        if not separator or name_type is None or not value.strip():
            raise ValueError(
                f"Unsupported subjectAltName entry '{item}'. Use DNS:, IP:, email: or URI:."
            )
        names.append(x509.GeneralName(name=name_type, value=value.strip()))
    if not names:
        raise ValueError("subjectAltName requires at least one entry.")
    return x509.GeneralNames(names)


def build_requested_extensions(
    extensions: Mapping[str, str | Iterable[str] | bool] | None,
) -> x509.Extensions | None:
    """
    Build an extension request from OpenSSL-style settings.

    Example: ``{"basicConstraints": "critical,CA:FALSE",
    "subjectAltName": "DNS:example.com, IP:10.0.0.1"}``.
    """
    if not extensions:
        return None
    built: list[x509.Extension] = []
    for name, value in extensions.items():
        normalized = name.replace("_", "").lower()
        critical, items = _split_critical(value)
        if normalized == "basicconstraints":
            extn_id = "basic_constraints"
            extn_value: Any = _basic_constraints(items)
        elif normalized == "keyusage":
            extn_id = "key_usage"
            extn_value = x509.KeyUsage(
                set(_lookup_names(items, _KEY_USAGE_NAMES, "keyUsage"))
            )
        elif normalized == "extendedkeyusage":
            extn_id = "extended_key_usage"
            extn_value = x509.ExtKeyUsageSyntax(
                _lookup_names(items, _EXTENDED_KEY_USAGE_NAMES, "extendedKeyUsage")
            )
        elif normalized == "subjectaltname":
            extn_id = "subject_alt_name"
            extn_value = _general_names(items)
        else:
            raise ValueError(
                f"Unsupported extension '{name}'. Use one of: basicConstraints, "
                "keyUsage, extendedKeyUsage, subjectAltName."
            )
        built.append(
            x509.Extension(
                {"extn_id": extn_id, "critical": critical, "extn_value": extn_value}
            )
        )
    return x509.Extensions(built)


def _plain(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def describe_extensions(extensions: x509.Extensions) -> list[dict[str, Any]]:
    return [
        {
            "name": extension["extn_id"].native,
            "critical": bool(extension["critical"].native),
            "value": _plain(extension["extn_value"].native),
        }
        for extension in extensions
    ]


def signature_algorithm_identifier(hash_algorithm: str) -> algos.SignedDigestAlgorithm:
    algorithm = _SIGNATURE_ALGORITHMS.get(normalize_hash_name(hash_algorithm))
    if algorithm is None:
        raise ValueError(
            f"Unsupported CSR signing hash '{hash_algorithm}'. "
            f"Use one of: {', '.join(supported_signature_hashes())}."
        )
    return algos.SignedDigestAlgorithm({"algorithm": algorithm})


def _load_pem_or_der(
    data: bytes | str,
    expected_pem_type: str,
) -> bytes:
    if isinstance(data, str):
        payload = data.encode("utf-8")
    else:
        payload = data

    if pem.detect(payload):
        pem_type, _headers, der_bytes = pem.unarmor(payload)
        if pem_type != expected_pem_type:
            raise ValueError(
                f"Expected PEM type '{expected_pem_type}', received '{pem_type}'."
            )
        return der_bytes
    return payload


def load_certificate_signing_request(data: bytes | str) -> csr.CertificationRequest:
    return csr.CertificationRequest.load(
        _load_pem_or_der(data, "CERTIFICATE REQUEST")
    )


def dump_csr_pem(request: csr.CertificationRequest) -> bytes:
    return pem.armor("CERTIFICATE REQUEST", request.dump())


def load_public_key_info(der_bytes: bytes) -> keys.PublicKeyInfo:
    return keys.PublicKeyInfo.load(der_bytes)


def describe_public_key(public_key_info: keys.PublicKeyInfo) -> dict[str, Any]:
    algorithm = public_key_info.algorithm
    described: dict[str, Any] = {
        "type": algorithm,
        "bits": public_key_info.bit_size,
    }
    if algorithm == "rsa":
        parsed = public_key_info["public_key"].parsed
        described["n"] = format(parsed["modulus"].native, "x")
        described["e"] = format(parsed["public_exponent"].native, "x")
    elif algorithm == "ec":
        described["curve"] = public_key_info.curve[1]
    return described


def create_certificate_signing_request(
    *,
    subject: x509.Name,
    subject_public_key_info: keys.PublicKeyInfo,
    sign_tbs: Callable[[bytes], bytes],
    hash_algorithm: str,
    extensions: x509.Extensions | None = None,
) -> csr.CertificationRequest:
    attributes: list[csr.CRIAttribute] = []
    if extensions is not None and len(extensions) > 0:
        attributes.append(
            csr.CRIAttribute(
                {
                    "type": "extension_request",
                    "values": [extensions],
                }
            )
        )

    request_info = csr.CertificationRequestInfo(
        {
            "version": "v1",
            "subject": subject,
            "subject_pk_info": subject_public_key_info,
            "attributes": attributes,
        }
    )
    signature_id = signature_algorithm_identifier(hash_algorithm)
    return csr.CertificationRequest(
        {
            "certification_request_info": request_info,
            "signature_algorithm": signature_id,
            "signature": sign_tbs(request_info.dump()),
        }
    )


def get_requested_extensions(
    request: csr.CertificationRequest,
) -> x509.Extensions:
    attributes = request["certification_request_info"]["attributes"]
    for attribute in attributes:
        if attribute["type"].native != "extension_request":
            continue
        values = attribute["values"]
        if len(values) > 0:
            return values[0]
    return x509.Extensions([])
