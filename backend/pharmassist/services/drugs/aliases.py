"""
Static drug reference tables.

- BRAND_ALIASES: common Indian brand names -> canonical generic composition
- GENERIC_SYNONYMS: international names folded onto the name used locally
- BANNED_COMBINATIONS: fixed-dose combinations prohibited by CDSCO notifications
- SCHEDULE_H1: generics that need a Schedule H1 register entry
- KNOWN_INTERACTIONS: interactions checked even when every lookup service is down

Combination generics are written as their ingredients, alphabetically
ordered and joined with " + ", which is the canonical form used everywhere.
"""
from typing import Dict, List, Tuple

from pharmassist.models.drugs import Severity

BRAND_ALIASES: Dict[str, str] = {
    "dolo": "paracetamol",
    "crocin": "paracetamol",
    "calpol": "paracetamol",
    "pacimol": "paracetamol",
    "tylenol": "paracetamol",
    "combiflam": "ibuprofen + paracetamol",
    "brufen": "ibuprofen",
    "ecosprin": "aspirin",
    "disprin": "aspirin",
    "warf": "warfarin",
    "pan": "pantoprazole",
    "pan d": "domperidone + pantoprazole",
    "pantocid": "pantoprazole",
    "razo": "rabeprazole",
    "omez": "omeprazole",
    "augmentin": "amoxicillin + clavulanic acid",
    "clavam": "amoxicillin + clavulanic acid",
    "mox": "amoxicillin",
    "azee": "azithromycin",
    "azithral": "azithromycin",
    "cifran": "ciprofloxacin",
    "taxim o": "cefixime",
    "allegra": "fexofenadine",
    "cetzine": "cetirizine",
    "okacet": "cetirizine",
    "montair lc": "levocetirizine + montelukast",
    "glycomet": "metformin",
    "telma": "telmisartan",
    "amlong": "amlodipine",
    "amlokind": "amlodipine",
    "atorva": "atorvastatin",
    "thyronorm": "levothyroxine",
    "eltroxin": "levothyroxine",
    "shelcal": "calcium carbonate + cholecalciferol",
    "zerodol": "aceclofenac",
    "zerodol p": "aceclofenac + paracetamol",
    "meftal": "mefenamic acid",
    "meftal spas": "dicyclomine + mefenamic acid",
    "nise": "nimesulide",
    "alprax": "alprazolam",
    "restyl": "alprazolam",
    "ultracet": "paracetamol + tramadol",
    "corex": "chlorpheniramine + codeine",
}

GENERIC_SYNONYMS: Dict[str, str] = {
    "acetaminophen": "paracetamol",
    "acetylsalicylic acid": "aspirin",
    "clavulanate": "clavulanic acid",
    "amoxicillin trihydrate": "amoxicillin",
    "vitamin d3": "cholecalciferol",
    "chlorphenamine": "chlorpheniramine",
    "thyroxine": "levothyroxine",
    "salbutamol sulfate": "salbutamol",
    "albuterol": "salbutamol",
}

KNOWN_GENERICS = frozenset(
    ingredient
    for composition in list(BRAND_ALIASES.values()) + list(GENERIC_SYNONYMS.values())
    for ingredient in composition.split(" + ")
) | frozenset({
    "diclofenac", "warfarin", "clopidogrel", "digoxin", "ketoconazole",
    "simvastatin", "sildenafil", "nitroglycerin", "methotrexate", "lithium",
    "spironolactone", "enalapril", "salbutamol", "diazepam", "zolpidem",
    "ceftriaxone", "cefpodoxime", "isoniazid", "rifampicin",
})

BANNED_COMBINATIONS: List[Tuple[str, str]] = [
    ("chlorpheniramine + codeine", "Codeine + chlorpheniramine cough syrup FDC banned by CDSCO (2016)."),
    ("corex", "Codeine + chlorpheniramine cough syrup FDC banned by CDSCO (2016)."),
    ("vicks action 500", "Paracetamol + phenylephrine + caffeine FDC banned by CDSCO (2016)."),
    ("caffeine + paracetamol + phenylephrine", "Paracetamol + phenylephrine + caffeine FDC banned by CDSCO (2016)."),
    ("nimesulide + paracetamol", "Nimesulide + paracetamol dispersible FDC banned by CDSCO (2018)."),
    ("aceclofenac + paracetamol + rabeprazole", "Aceclofenac + paracetamol + rabeprazole FDC banned by CDSCO (2018)."),
    ("glimepiride + metformin + pioglitazone", "Irrational antidiabetic FDC listed in the 2018 CDSCO ban."),
    ("phenylbutazone", "Phenylbutazone for human use is prohibited in India."),
    ("analgin", "Metamizole (analgin) FDCs are banned in India."),
]

SCHEDULE_H1 = frozenset({
    "alprazolam", "diazepam", "zolpidem", "tramadol", "codeine",
    "cefixime", "cefpodoxime", "ceftriaxone", "levofloxacin", "moxifloxacin",
    "isoniazid", "rifampicin", "ethambutol", "pyrazinamide", "buprenorphine",
})

KNOWN_INTERACTIONS: List[Tuple[str, str, Severity, str, str]] = [
    (
        "aspirin", "warfarin", Severity.MAJOR,
        "Increased risk of bleeding. Aspirin increases bleeding time.",
        "Avoid concurrent use unless directed by a physician.",
    ),
    (
        "clopidogrel", "omeprazole", Severity.MODERATE,
        "Omeprazole reduces the antiplatelet effect of clopidogrel.",
        "Prefer pantoprazole if a PPI is needed.",
    ),
    (
        "nitroglycerin", "sildenafil", Severity.SEVERE,
        "Severe hypotension.",
        "Contraindicated together.",
    ),
    (
        "ibuprofen", "warfarin", Severity.MAJOR,
        "NSAIDs increase bleeding risk with warfarin.",
        "Use paracetamol for pain instead.",
    ),
    (
        "ketoconazole", "simvastatin", Severity.SEVERE,
        "Raised statin levels with risk of rhabdomyolysis.",
        "Contraindicated together.",
    ),
    (
        "enalapril", "spironolactone", Severity.MAJOR,
        "Risk of dangerous hyperkalaemia.",
        "Monitor potassium or avoid the combination.",
    ),
    (
        "lithium", "ibuprofen", Severity.MAJOR,
        "NSAIDs raise lithium levels towards toxicity.",
        "Avoid or monitor lithium levels closely.",
    ),
    (
        "methotrexate", "aspirin", Severity.MAJOR,
        "Reduced methotrexate clearance and toxicity.",
        "Avoid unless supervised by the prescriber.",
    ),
]
