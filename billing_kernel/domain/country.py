"""Country -- ISO 3166-1 registry with per-country postal code rules."""

import re
from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class PostalRule:
    """Postal code format for one country."""

    pattern: re.Pattern[str]
    required: bool
    example: str

    def normalize(self, match: re.Match[str]) -> str:
        return match.group(0)


@dataclass(frozen=True)
class _USPostalRule(PostalRule):
    def normalize(self, match: re.Match[str]) -> str:
        zip5, plus4 = match.group(1), match.group(2)
        return f"{zip5}-{plus4}" if plus4 else zip5


@dataclass(frozen=True)
class _CAPostalRule(PostalRule):
    def normalize(self, match: re.Match[str]) -> str:
        return f"{match.group(1)} {match.group(2)}"


# ISO 3166-1 alpha-2 codes and short names
_ISO_3166 = """
AD Andorra
AE United Arab Emirates
AF Afghanistan
AG Antigua and Barbuda
AI Anguilla
AL Albania
AM Armenia
AO Angola
AQ Antarctica
AR Argentina
AS American Samoa
AT Austria
AU Australia
AW Aruba
AX Aland Islands
AZ Azerbaijan
BA Bosnia and Herzegovina
BB Barbados
BD Bangladesh
BE Belgium
BF Burkina Faso
BG Bulgaria
BH Bahrain
BI Burundi
BJ Benin
BL Saint Barthelemy
BM Bermuda
BN Brunei Darussalam
BO Bolivia
BQ Bonaire, Sint Eustatius and Saba
BR Brazil
BS Bahamas
BT Bhutan
BV Bouvet Island
BW Botswana
BY Belarus
BZ Belize
CA Canada
CC Cocos (Keeling) Islands
CD Congo, Democratic Republic of the
CF Central African Republic
CG Congo
CH Switzerland
CI Cote d'Ivoire
CK Cook Islands
CL Chile
CM Cameroon
CN China
CO Colombia
CR Costa Rica
CU Cuba
CV Cabo Verde
CW Curacao
CX Christmas Island
CY Cyprus
CZ Czechia
DE Germany
DJ Djibouti
DK Denmark
DM Dominica
DO Dominican Republic
DZ Algeria
EC Ecuador
EE Estonia
EG Egypt
EH Western Sahara
ER Eritrea
ES Spain
ET Ethiopia
FI Finland
FJ Fiji
FK Falkland Islands (Malvinas)
FM Micronesia
FO Faroe Islands
FR France
GA Gabon
GB United Kingdom
GD Grenada
GE Georgia
GF French Guiana
GG Guernsey
GH Ghana
GI Gibraltar
GL Greenland
GM Gambia
GN Guinea
GP Guadeloupe
GQ Equatorial Guinea
GR Greece
GS South Georgia and the South Sandwich Islands
GT Guatemala
GU Guam
GW Guinea-Bissau
GY Guyana
HK Hong Kong
HM Heard Island and McDonald Islands
HN Honduras
HR Croatia
HT Haiti
HU Hungary
ID Indonesia
IE Ireland
IL Israel
IM Isle of Man
IN India
IO British Indian Ocean Territory
IQ Iraq
IR Iran
IS Iceland
IT Italy
JE Jersey
JM Jamaica
JO Jordan
JP Japan
KE Kenya
KG Kyrgyzstan
KH Cambodia
KI Kiribati
KM Comoros
KN Saint Kitts and Nevis
KP Korea, Democratic People's Republic of
KR Korea, Republic of
KW Kuwait
KY Cayman Islands
KZ Kazakhstan
LA Lao People's Democratic Republic
LB Lebanon
LC Saint Lucia
LI Liechtenstein
LK Sri Lanka
LR Liberia
LS Lesotho
LT Lithuania
LU Luxembourg
LV Latvia
LY Libya
MA Morocco
MC Monaco
MD Moldova
ME Montenegro
MF Saint Martin (French part)
MG Madagascar
MH Marshall Islands
MK North Macedonia
ML Mali
MM Myanmar
MN Mongolia
MO Macao
MP Northern Mariana Islands
MQ Martinique
MR Mauritania
MS Montserrat
MT Malta
MU Mauritius
MV Maldives
MW Malawi
MX Mexico
MY Malaysia
MZ Mozambique
NA Namibia
NC New Caledonia
NE Niger
NF Norfolk Island
NG Nigeria
NI Nicaragua
NL Netherlands
NO Norway
NP Nepal
NR Nauru
NU Niue
NZ New Zealand
OM Oman
PA Panama
PE Peru
PF French Polynesia
PG Papua New Guinea
PH Philippines
PK Pakistan
PL Poland
PM Saint Pierre and Miquelon
PN Pitcairn
PR Puerto Rico
PS Palestine, State of
PT Portugal
PW Palau
PY Paraguay
QA Qatar
RE Reunion
RO Romania
RS Serbia
RU Russian Federation
RW Rwanda
SA Saudi Arabia
SB Solomon Islands
SC Seychelles
SD Sudan
SE Sweden
SG Singapore
SH Saint Helena, Ascension and Tristan da Cunha
SI Slovenia
SJ Svalbard and Jan Mayen
SK Slovakia
SL Sierra Leone
SM San Marino
SN Senegal
SO Somalia
SR Suriname
SS South Sudan
ST Sao Tome and Principe
SV El Salvador
SX Sint Maarten (Dutch part)
SY Syrian Arab Republic
SZ Eswatini
TC Turks and Caicos Islands
TD Chad
TF French Southern Territories
TG Togo
TH Thailand
TJ Tajikistan
TK Tokelau
TL Timor-Leste
TM Turkmenistan
TN Tunisia
TO Tonga
TR Turkiye
TT Trinidad and Tobago
TV Tuvalu
TW Taiwan
TZ Tanzania
UA Ukraine
UG Uganda
UM United States Minor Outlying Islands
US United States
UY Uruguay
UZ Uzbekistan
VA Holy See
VC Saint Vincent and the Grenadines
VE Venezuela
VG Virgin Islands (British)
VI Virgin Islands (U.S.)
VN Viet Nam
VU Vanuatu
WF Wallis and Futuna
WS Samoa
YE Yemen
YT Mayotte
ZA South Africa
ZM Zambia
ZW Zimbabwe
"""


def _parse_iso_3166(table: str) -> dict[str, str]:
    countries: dict[str, str] = {}
    for line in table.strip().splitlines():
        code, name = line.split(" ", 1)
        countries[code] = name
    return countries


class CountryRegistry:
    """Registry of ISO 3166-1 alpha-2 countries and their postal code rules."""

    _COUNTRIES: ClassVar[dict[str, str]] = _parse_iso_3166(_ISO_3166)

    # Countries without an entry accept any (or no) postal code
    _POSTAL_RULES: ClassVar[dict[str, PostalRule]] = {
        "US": _USPostalRule(
            re.compile(r"^(\d{5})(?:\s*-?\s*(\d{4}))?$"), True, "62704 or 62704-1234",
        ),
        "CA": _CAPostalRule(
            re.compile(r"^([A-Z]\d[A-Z])\s*(\d[A-Z]\d)$"), True, "K1A 0B1",
        ),
        "AU": PostalRule(re.compile(r"^\d{4}$"), False, "2000"),
        "DE": PostalRule(re.compile(r"^\d{5}$"), False, "10115"),
        "FR": PostalRule(re.compile(r"^\d{5}$"), False, "75001"),
        "GB": PostalRule(
            re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2}$"), False, "SW1A 1AA",
        ),
    }

    @classmethod
    def is_valid(cls, code: str | None) -> bool:
        """Check if a country code is a valid ISO 3166-1 alpha-2 code."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._COUNTRIES

    @classmethod
    def name(cls, code: str) -> str | None:
        """Full country name for a code, or None."""
        if not code or not isinstance(code, str):
            return None
        return cls._COUNTRIES.get(code.upper().strip())

    @classmethod
    def validate(cls, code: str | None) -> str:
        """Validate and normalize a country code."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid country code: {code!r}")
        normalized = code.upper().strip()
        if normalized not in cls._COUNTRIES:
            raise ValueError(f"Invalid ISO 3166 country code: {code!r}")
        return normalized

    @classmethod
    def validate_postal_code(cls, country: str, postal_code: str | None) -> str | None:
        """
        Validate and normalize a postal code for ``country``.

        Returns the normalized code (None for an allowed blank).

        Raises:
            ValueError: if the code is required and missing, or does not
                match the country's format.
        """
        value = (postal_code or "").strip().upper()
        rule = cls._POSTAL_RULES.get(country)
        if rule is None:
            return (postal_code or "").strip() or None
        if not value:
            if rule.required:
                raise ValueError(f"Zip/postal code is required for {country}")
            return None
        match = rule.pattern.match(value)
        if match is None:
            raise ValueError(
                f"Illegal zip/postal code for {country}: {postal_code!r} "
                f"(expected e.g. {rule.example})"
            )
        return rule.normalize(match)

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all valid country codes."""
        return frozenset(cls._COUNTRIES.keys())
