"""Shared test fixtures for ccdalens tests."""

import pytest

from ccdalens.core.tree import xml_to_tree

NS = "urn:hl7-org:v3"
SDTC = "urn:hl7-org:sdtc"

US_REALM_HEADER = "2.16.840.1.113883.10.20.22.1.1"
CCD_TEMPLATE = "2.16.840.1.113883.10.20.22.1.2"
CARE_PLAN_TEMPLATE = "2.16.840.1.113883.10.20.22.1.15"
R21 = "2015-08-01"


def make_document(doc_templates: str, body: str = "", code: str = "", header: str = "") -> str:
    """Wrap header template ids and body sections in a ClinicalDocument."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<ClinicalDocument xmlns="{NS}" xmlns:sdtc="{SDTC}">
    <realmCode code="US"/>
    {doc_templates}
    <id root="2.16.840.1.113883.19.5" extension="DOC-1"/>
    {code}
    <title>Test Document</title>
    <effectiveTime value="20250115103000-0500"/>
    {header}
    <component>
        <structuredBody>
            {body}
        </structuredBody>
    </component>
</ClinicalDocument>"""


def section(templates: str, code: str, title: str, text: str = "", entries: str = "") -> str:
    return f"""<component>
        <section>
            {templates}
            <code code="{code}" codeSystem="2.16.840.1.113883.6.1"/>
            <title>{title}</title>
            <text>{text}</text>
            {entries}
        </section>
    </component>"""


PATIENT_HEADER = """
    <recordTarget>
        <patientRole>
            <id root="2.16.840.1.113883.19.5.99999.2" extension="12345"/>
            <id root="2.16.840.1.113883.4.1" extension="111-22-3333"/>
            <addr use="HP">
                <streetAddressLine>1 Main St</streetAddressLine>
                <city>Springfield</city>
                <state>IL</state>
                <postalCode>62701</postalCode>
            </addr>
            <telecom use="HP" value="tel:+1(555)555-1234"/>
            <patient>
                <name use="L">
                    <given>John</given>
                    <family>Doe</family>
                </name>
                <administrativeGenderCode code="M" codeSystem="2.16.840.1.113883.5.1"/>
                <birthTime value="19750615"/>
            </patient>
        </patientRole>
    </recordTarget>
"""


@pytest.fixture
def ccd_xml():
    """Minimal CCD: patient header plus an allergies section with no entries."""
    templates = (
        f'<templateId root="{US_REALM_HEADER}" extension="{R21}"/>'
        f'<templateId root="{CCD_TEMPLATE}" extension="{R21}"/>'
    )
    allergies = section(
        '<templateId root="2.16.840.1.113883.10.20.22.2.6.1" extension="2015-08-01"/>',
        "48765-2",
        "Allergies",
        text="No known allergies",
    )
    return make_document(
        templates,
        body=allergies,
        code='<code code="34133-9" codeSystem="2.16.840.1.113883.6.1" displayName="Summary of episode note"/>',
        header=PATIENT_HEADER,
    )


@pytest.fixture
def ccd_tree(ccd_xml):
    return xml_to_tree(ccd_xml)


@pytest.fixture
def care_plan_tree():
    """Care plan with health concerns and interventions but no goals section."""
    templates = (
        f'<templateId root="{US_REALM_HEADER}" extension="{R21}"/>'
        f'<templateId root="{CARE_PLAN_TEMPLATE}" extension="{R21}"/>'
    )
    concerns = section(
        '<templateId root="2.16.840.1.113883.10.20.22.2.58" extension="2015-08-01"/>',
        "75310-3",
        "Health Concerns",
        entries="""<entry>
            <act classCode="ACT" moodCode="EVN">
                <templateId root="2.16.840.1.113883.10.20.22.4.132"/>
                <id root="hc-1"/>
                <code code="75310-3" codeSystem="2.16.840.1.113883.6.1"/>
                <statusCode code="active"/>
                <entryRelationship typeCode="REFR">
                    <observation classCode="OBS" moodCode="EVN">
                        <code code="55607006" codeSystem="2.16.840.1.113883.6.96" displayName="Problem"/>
                        <value code="44054006" codeSystem="2.16.840.1.113883.6.96"
                               displayName="Diabetes mellitus type 2"/>
                    </observation>
                </entryRelationship>
            </act>
        </entry>""",
    )
    interventions = section(
        '<templateId root="2.16.840.1.113883.10.20.21.2.3" extension="2015-08-01"/>',
        "62387-6",
        "Interventions",
        entries="""<entry>
            <act classCode="ACT" moodCode="INT">
                <id root="iv-1"/>
                <code code="410177006" codeSystem="2.16.840.1.113883.6.96"
                      displayName="Dietary education"/>
                <statusCode code="active"/>
                <effectiveTime><low value="20250201"/></effectiveTime>
            </act>
        </entry>""",
    )
    return xml_to_tree(make_document(
        templates,
        body=concerns + interventions,
        code='<code code="52521-2" codeSystem="2.16.840.1.113883.6.1"/>',
        header=PATIENT_HEADER,
    ))


def section_tree(section_xml: str) -> dict:
    """Parse one <section> fragment and return the section node."""
    tree = xml_to_tree(f'<section xmlns="{NS}">{section_xml}</section>')
    return tree["section"]
