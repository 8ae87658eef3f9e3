# carriers.py

# =====================================================================
# SECTION START: CARRIER NAMES
# IATA code -> display name for alert emails.
# Providers only return codes; unknown codes render as the code itself.
# =====================================================================

CARRIER_NAMES = {
    # United States
    "AA": "American Airlines",
    "DL": "Delta Air Lines",
    "UA": "United Airlines",
    "WN": "Southwest Airlines",
    "B6": "JetBlue Airways",
    "AS": "Alaska Airlines",
    "HA": "Hawaiian Airlines",
    "NK": "Spirit Airlines",
    "F9": "Frontier Airlines",
    "G4": "Allegiant Air",
    "SY": "Sun Country Airlines",

    # Canada and Latin America
    "AC": "Air Canada",
    "WS": "WestJet",
    "AM": "Aeromexico",
    "Y4": "Volaris",
    "CM": "Copa Airlines",
    "AV": "Avianca",
    "LA": "LATAM Airlines",

    # Europe
    "BA": "British Airways",
    "VS": "Virgin Atlantic",
    "LH": "Lufthansa",
    "AF": "Air France",
    "KL": "KLM",
    "IB": "Iberia",
    "EI": "Aer Lingus",
    "LX": "Swiss",
    "TP": "TAP Air Portugal",
    "AZ": "ITA Airways",
    "SK": "Scandinavian Airlines",
    "AY": "Finnair",
    "TK": "Turkish Airlines",

    # Middle East, Asia and Pacific
    "EK": "Emirates",
    "QR": "Qatar Airways",
    "EY": "Etihad Airways",
    "SQ": "Singapore Airlines",
    "CX": "Cathay Pacific",
    "JL": "Japan Airlines",
    "NH": "All Nippon Airways",
    "KE": "Korean Air",
    "QF": "Qantas",
    "NZ": "Air New Zealand",
}

# =====================================================================
# SECTION END: CARRIER NAMES
# =====================================================================


def carrier_name(code) -> str:
    if not code:
        return "Unknown carrier"
    key = str(code).strip().upper()
    return CARRIER_NAMES.get(key, key)
