ACTIVE = "ACTIVE"
DELETED = "DELETED"

PUBLICITY = ("PRIVATE", "VOTER", "PUBLIC")
DEFAULT_PUBLICITY = "PRIVATE"

# every election gets this partylist; commissioners can't take the acronym
INDEPENDENT_ACRONYM = "IND"
INDEPENDENT_NAME = "Independent"

# ballot wire format marks an explicit abstention with this token
ABSTAIN_TOKEN = "abstain"

# slugs that collide with top level routes of the web client
TAKEN_SLUGS = frozenset([
    "api",
    "settings",
    "election",
    "user",
    "token",
    "login",
    "signin",
    "signup",
    "logout",
    "forgot-password",
    "reset-password",
    "verify",
    "dashboard",
    "contact",
    "profile",
    "invite",
    "admin",
    "admin-dashboard",
    "admin-election",
    "admin-user",
    "admin-settings",
    "invitation",
])

# position templates offered when an election is created (0 = none)
POSITION_TEMPLATES = {
    0: {"org": "None", "college": "No template", "positions": []},
    1: {
        "org": "CEIT-SC",
        "college": "CEIT - College of Engineering and Information Technology",
        "positions": [
            "President",
            "Vice President for Internal Affairs",
            "Vice President for External Affairs",
            "Vice President for Documentation",
            "Vice President for Finance",
            "Vice President for Budget Management",
            "Vice President for Operations",
            "Vice President for Public Relations",
            "Gender and Development Representative",
        ],
    },
    2: {
        "org": "CSSO",
        "college": "CEIT - College of Engineering and Information Technology",
        "positions": [
            "President",
            "Vice President for Internal Affairs",
            "Vice President for External Affairs",
            "Secretary",
            "Treasurer",
            "Auditor",
            "Business Manager",
            "Public Relations Officer",
        ],
    },
    3: {
        "org": "CoESS-ICPEP",
        "college": "CEIT - College of Engineering and Information Technology",
        "positions": [
            "President",
            "Vice President for Internal Affair",
            "Vice President for External Affair",
            "Secretary",
            "Assistant Secretary",
            "Treasurer",
            "Auditor",
            "Business Manager",
            "Public Relations Officer",
        ],
    },
    4: {
        "org": "IIEE",
        "college": "CEIT - College of Engineering and Information Technology",
        "positions": [
            "President",
            "Vice President for Internal Affairs",
            "Vice President for External Affairs",
            "Vice President for Technical",
            "Secretary",
            "Assistant Secretary",
            "Treasurer",
            "Assistant Treasurer",
            "Auditor",
            "Public Relations Officer",
        ],
    },
    5: {
        "org": "PIIE",
        "college": "CEIT - College of Engineering and Information Technology",
        "positions": [
            "President",
            "Vice President for Internal Affairs",
            "Vice President for External Affairs",
            "Vice President for Finance",
            "Vice President for Documentation",
            "Vice President for Academics and Research",
            "Vice President for Publication",
            "Vice President for Activities and Preparation",
            "Vice President for Communication",
            "Vice President for Marketing",
        ],
    },
}
