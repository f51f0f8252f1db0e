"""Static catalog of emergency guide templates, one per hazard.

A community guide starts as a copy of its hazard's template.  During
onboarding the AI service may return per-hazard customizations which
are merged in by `build_guide`:

    enhanced_sections    {"before": [...], "during": [...], "after": [...]}
                         appended after the template's own sections
    additional_supplies  appended to the supply list
    emergency_contacts   replace the template contacts when non-empty
    custom_notes         free text
    local_resources      list of strings
"""

from typing import Any

PHASES = ("before", "during", "after")

_EMERGENCY_SERVICES = {
    "name": "Emergency Services",
    "number": "111",
    "description": "Fire, Police, Ambulance",
}


def _sections(prefix: str, **phases: list[tuple[str, str, str]]) -> dict[str, list[dict]]:
    out: dict[str, list[dict]] = {}
    for phase in PHASES:
        out[phase] = [
            {"id": f"{prefix}-{phase}-{i}", "title": title, "content": content, "icon": icon}
            for i, (title, content, icon) in enumerate(phases.get(phase, []), start=1)
        ]
    return out


GUIDE_TEMPLATES: dict[str, dict[str, Any]] = {
    "fire": {
        "id": "fire-template",
        "name": "Wildfire & Fire Emergency",
        "description": "Preparing for, responding to and recovering from wildfires and house fires.",
        "icon": "local_fire_department",
        "color": "from-orange-500 to-red-600",
        "sections": _sections(
            "fire",
            before=[
                ("Create a Defensible Space", "Clear dry vegetation and debris within 10 metres of the house.", "yard"),
                ("Plan Evacuation Routes", "Know two ways out of your area and keep the car fuelled in fire season.", "route"),
                ("Prepare Emergency Kit", "Pack documents, medication and N95 masks in a go bag by the door.", "backpack"),
            ],
            during=[
                ("Evacuate Immediately When Ordered", "Leave early on the designated route. Never drive into smoke.", "directions_run"),
                ("If Trapped in Your Home", "Call 111, close windows and vents, fill sinks with water and stay low.", "shield"),
            ],
            after=[
                ("Return Home Safely", "Only return when authorities say it is safe. Watch for hot spots.", "home"),
                ("Document Damage", "Photograph damage before cleaning up and contact your insurer.", "photo_camera"),
            ],
        ),
        "supplies": ["N95 masks", "Fire extinguisher", "Go bag", "Battery radio", "Copies of documents"],
        "emergency_contacts": [
            _EMERGENCY_SERVICES,
            {"name": "Fire and Emergency NZ", "number": "0800 473 473", "description": "Non-emergency enquiries"},
        ],
    },
    "flood": {
        "id": "flood-template",
        "name": "Flood Emergency",
        "description": "Preparing for and responding to floods, flash floods and storm surge.",
        "icon": "water",
        "color": "from-blue-500 to-cyan-600",
        "sections": _sections(
            "flood",
            before=[
                ("Know Your Risk", "Check council flood maps and learn your local warning signals.", "map"),
                ("Protect Your Property", "Raise appliances and keep sandbags ready if you are low-lying.", "home"),
            ],
            during=[
                ("Move to Higher Ground", "Leave low areas immediately when water starts rising.", "terrain"),
                ("Never Drive or Walk Through Flood Water", "Fifteen centimetres of moving water can knock you over.", "no_transfer"),
            ],
            after=[
                ("Clean and Disinfect", "Treat everything flood water touched as contaminated.", "cleaning_services"),
                ("Check Utilities", "Have gas and electrics inspected before switching back on.", "plumbing"),
            ],
        ),
        "supplies": ["Bottled water", "Sandbags", "Waterproof bags", "Torch", "Gumboots"],
        "emergency_contacts": [
            _EMERGENCY_SERVICES,
            {"name": "Local Council", "number": "Check local listings", "description": "Flood warnings and information"},
        ],
    },
    "strong_winds": {
        "id": "strong-winds-template",
        "name": "Strong Winds & Storm Emergency",
        "description": "Preparing for and responding to severe wind events, cyclones and storms.",
        "icon": "air",
        "color": "from-slate-500 to-gray-700",
        "sections": _sections(
            "strong-winds",
            before=[
                ("Secure Your Property", "Tie down outdoor furniture and trim overhanging branches.", "home"),
                ("Identify Safe Rooms", "Pick an interior room away from windows.", "meeting_room"),
            ],
            during=[
                ("Stay Indoors", "Keep away from windows until the wind has dropped.", "house"),
                ("Power Outage Safety", "Use torches, not candles, and never run generators indoors.", "flashlight_on"),
            ],
            after=[
                ("Assess Damage Carefully", "Watch for fallen power lines and unstable trees.", "search"),
                ("Check on Others", "Visit elderly and isolated neighbours.", "groups"),
            ],
        ),
        "supplies": ["Torch", "Spare batteries", "Tarpaulin", "Rope", "Battery radio"],
        "emergency_contacts": [
            _EMERGENCY_SERVICES,
            {"name": "MetService Weather", "number": "0900 999 99", "description": "Weather forecasts"},
        ],
    },
    "earthquake": {
        "id": "earthquake-template",
        "name": "Earthquake Emergency",
        "description": "Earthquake preparedness, response and recovery.",
        "icon": "vibration",
        "color": "from-amber-600 to-yellow-700",
        "sections": _sections(
            "earthquake",
            before=[
                ("Secure Your Space", "Fix tall furniture to walls and store heavy items low.", "chair"),
                ("Create a Family Plan", "Agree where to meet and who to call out of town.", "family_restroom"),
            ],
            during=[
                ("DROP, COVER, and HOLD", "Drop to the ground, take cover under a table and hold on.", "emergency"),
                ("If Outdoors", "Move clear of buildings, trees and power lines.", "park"),
            ],
            after=[
                ("Expect Aftershocks", "Drop, cover and hold again each time the ground shakes.", "warning"),
                ("Tsunami Awareness", "Near the coast, a long or strong quake means move to high ground.", "waves"),
            ],
        ),
        "supplies": ["Water for 3 days", "Sturdy shoes", "First aid kit", "Whistle", "Torch"],
        "emergency_contacts": [
            _EMERGENCY_SERVICES,
            {"name": "GeoNet", "number": "geonet.org.nz", "description": "Earthquake information"},
            {"name": "Civil Defence", "number": "Check local listings", "description": "Emergency management"},
        ],
    },
    "tsunami": {
        "id": "tsunami-template",
        "name": "Tsunami Emergency",
        "description": "Tsunami awareness, warning systems and evacuation.",
        "icon": "waves",
        "color": "from-teal-500 to-blue-700",
        "sections": _sections(
            "tsunami",
            before=[
                ("Know Your Risk", "Find out whether you live, work or play in a tsunami zone.", "map"),
                ("Plan Your Evacuation", "Know the route to high ground you can reach on foot.", "route"),
            ],
            during=[
                ("Long or Strong, Get Gone", "If a quake is long or strong, move inland at once.", "directions_run"),
                ("Move Immediately to High Ground", "Go on foot where possible and do not wait for an official warning.", "terrain"),
            ],
            after=[
                ("Wait for All-Clear", "Stay away from the coast until officials say it is safe.", "hourglass_top"),
                ("Return Carefully", "Watch for debris and damaged structures.", "home"),
            ],
        ),
        "supplies": ["Go bag", "Walking shoes", "Water", "Battery radio", "Warm clothing"],
        "emergency_contacts": [
            _EMERGENCY_SERVICES,
            {
                "name": "National Emergency Management Agency",
                "number": "civildefence.govt.nz",
                "description": "Tsunami warnings",
            },
        ],
    },
    "snow": {
        "id": "snow-template",
        "name": "Snow & Ice Emergency",
        "description": "Preparing for and responding to snow storms and ice events.",
        "icon": "ac_unit",
        "color": "from-sky-400 to-indigo-500",
        "sections": _sections(
            "snow",
            before=[
                ("Winterize Your Home", "Insulate pipes and check the heating before winter.", "home"),
                ("Prepare Your Vehicle", "Carry chains, a blanket and a shovel.", "directions_car"),
            ],
            during=[
                ("Stay Indoors", "Avoid travel unless it is essential.", "house"),
                ("If Stranded in Vehicle", "Stay with the car, run the engine briefly and keep the exhaust clear.", "car_crash"),
            ],
            after=[
                ("Clear Snow Safely", "Take breaks and lift small loads.", "cleaning_services"),
                ("Check on Others", "Look in on neighbours who may be snowed in.", "groups"),
            ],
        ),
        "supplies": ["Blankets", "Snow shovel", "Rock salt", "Non-perishable food", "Torch"],
        "emergency_contacts": [
            _EMERGENCY_SERVICES,
            {"name": "Road Conditions", "number": "0800 44 44 49", "description": "NZTA road information"},
        ],
    },
    "pandemic": {
        "id": "pandemic-template",
        "name": "Pandemic & Health Emergency",
        "description": "Preparing for and responding to infectious disease outbreaks.",
        "icon": "coronavirus",
        "color": "from-green-500 to-emerald-700",
        "sections": _sections(
            "pandemic",
            before=[
                ("Stock Essential Supplies", "Keep two weeks of food, medication and hygiene supplies.", "inventory_2"),
                ("Plan for Disruptions", "Arrange childcare and remote work options.", "event_busy"),
            ],
            during=[
                ("Follow Health Guidelines", "Follow official advice on isolation and testing.", "health_and_safety"),
                ("Care for Sick Family Members", "Keep the sick person in a separate room where possible.", "medical_services"),
            ],
            after=[
                ("Continue Precautions", "Keep up hygiene habits as restrictions ease.", "clean_hands"),
                ("Learn and Prepare", "Review what worked and restock supplies.", "school"),
            ],
        ),
        "supplies": ["Face masks", "Hand sanitiser", "Thermometer", "Prescription medication", "Cleaning supplies"],
        "emergency_contacts": [
            {"name": "Emergency Services", "number": "111", "description": "Medical emergencies"},
            {"name": "Healthline", "number": "0800 611 116", "description": "Health advice 24/7"},
        ],
    },
    "solar_storm": {
        "id": "solar-storm-template",
        "name": "Solar Storm & Geomagnetic Event",
        "description": "Preparing for severe space weather affecting power grids and communications.",
        "icon": "wb_sunny",
        "color": "from-yellow-400 to-orange-600",
        "sections": _sections(
            "solar-storm",
            before=[
                ("Prepare for Extended Power Outages", "Plan for several days without power or mobile coverage.", "power_off"),
                ("Communication Plan", "Agree a meeting place in case phones stop working.", "forum"),
            ],
            during=[
                ("Unplug and Protect", "Unplug sensitive electronics during the storm peak.", "power"),
                ("Travel Considerations", "Expect GPS and navigation problems.", "explore"),
            ],
            after=[
                ("Restore Power Safely", "Switch appliances back on one at a time.", "electrical_services"),
                ("Communication Recovery", "Check in with your community at the meeting point.", "cell_tower"),
            ],
        ),
        "supplies": ["Battery radio", "Cash", "Paper maps", "Spare batteries", "Solar charger"],
        "emergency_contacts": [
            _EMERGENCY_SERVICES,
            {"name": "Power Company", "number": "Check your bill", "description": "Report outages"},
        ],
    },
    "invasion": {
        "id": "invasion-template",
        "name": "Outside Invasion & Security Emergency",
        "description": "Community protection during hostile incursions or breakdowns of order.",
        "icon": "shield",
        "color": "from-red-700 to-slate-800",
        "sections": _sections(
            "invasion",
            before=[
                ("Establish Community Security", "Organise a watch roster and agree signals.", "security"),
                ("Establish Communication Systems", "Set up radio channels that do not rely on the grid.", "radio"),
            ],
            during=[
                ("Implement Security Protocols", "Follow the agreed roster and report movements.", "policy"),
                ("Protect Vulnerable Members", "Move children, elderly and disabled members to safe locations.", "family_restroom"),
            ],
            after=[
                ("Account for All Community Members", "Run a roll call at the meeting point.", "checklist"),
                ("Address Psychological Impact", "Arrange support for anyone affected.", "psychology"),
            ],
        ),
        "supplies": ["Two-way radios", "First aid kit", "Water", "Torch", "Non-perishable food"],
        "emergency_contacts": [
            {"name": "Emergency Services", "number": "111", "description": "Police, Fire, Ambulance (if available)"},
            {"name": "Community Security Team", "number": "Radio Channel", "description": "Pre-established frequency"},
            {"name": "Civil Defence", "number": "Check local listings", "description": "Emergency coordination"},
        ],
    },
}


def get_template(hazard: str) -> dict[str, Any] | None:
    return GUIDE_TEMPLATES.get(hazard)


def build_guide(hazard: str, customization: dict[str, Any] | None = None) -> dict[str, Any] | None:
    """Merge a hazard's template with its AI customization.

    Returns the column values for a `CommunityGuide` row (without the
    community, ordering and author fields), or None for an unknown hazard.
    """
    template = get_template(hazard)
    if template is None:
        return None
    custom = customization or {}

    sections = {phase: list(template["sections"][phase]) for phase in PHASES}
    enhanced = custom.get("enhanced_sections") or {}
    for phase in PHASES:
        sections[phase].extend(enhanced.get(phase) or [])

    supplies = list(template["supplies"]) + list(custom.get("additional_supplies") or [])
    contacts = custom.get("emergency_contacts") or list(template["emergency_contacts"])

    return {
        "name": template["name"],
        "description": template["description"],
        "icon": template["icon"],
        "color": template["color"],
        "guide_type": hazard,
        "template_id": template["id"],
        "sections": sections,
        "supplies": supplies,
        "emergency_contacts": contacts,
        "custom_notes": custom.get("custom_notes") or None,
        "local_resources": custom.get("local_resources") or None,
    }
