"""Tests for header, care plan, procedural and narrative extractors."""

from ccdalens.core.hl7 import DEFAULT_ID_TYPES
from ccdalens.core.tree import xml_to_tree
from ccdalens.extractors.care_plan import extract_goals, extract_health_concerns, extract_interventions
from ccdalens.extractors.header import extract_header, extract_patient
from ccdalens.extractors.narrative import extract_narrative, narrative_blocks
from ccdalens.extractors.procedural import extract_anesthesia, extract_complications, extract_dicom_catalog

from conftest import NS, section_tree


class TestHeader:
    DOC = f"""<ClinicalDocument xmlns="{NS}">
        <templateId root="2.16.840.1.113883.10.20.22.1.1" extension="2015-08-01"/>
        <id root="1.2.3" extension="D1"/>
        <code code="34133-9" displayName="Summary of episode note"/>
        <title> Visit Summary </title>
        <effectiveTime value="20250115"/>
        <confidentialityCode code="N"/>
        <languageCode code="en-US"/>
        <setId root="9.9.9"/>
        <versionNumber value="2"/>
        <author><assignedAuthor>
            <assignedAuthoringDevice><softwareName>EHR 9000</softwareName></assignedAuthoringDevice>
        </assignedAuthor></author>
        <custodian><assignedCustodian><representedCustodianOrganization>
            <id root="2.16.840.1.113883.4.6" extension="1112223333"/>
            <name>General Hospital</name>
        </representedCustodianOrganization></assignedCustodian></custodian>
        <recordTarget><patientRole>
            <id root="2.16.840.1.113883.4.1" extension="111-22-3333"/>
            <id root="1.2.840.114350.1.13" extension="E100"/>
            <patient>
                <name>Pat Smith</name>
                <administrativeGenderCode code="F"/>
                <raceCode code="2106-3" displayName="White"/>
                <ethnicGroupCode code="2186-5" displayName="Not Hispanic or Latino"/>
                <maritalStatusCode code="M" displayName="Married"/>
                <languageCommunication><languageCode code="en"/></languageCommunication>
                <guardian>
                    <code code="MTH" displayName="Mother"/>
                    <guardianPerson><name><given>Lee</given><family>Smith</family></name></guardianPerson>
                </guardian>
            </patient>
        </patientRole></recordTarget>
    </ClinicalDocument>"""

    def _doc(self):
        return xml_to_tree(self.DOC)["ClinicalDocument"]

    def test_header_fields(self):
        header = extract_header(self._doc())
        assert header.title == "Visit Summary"
        assert header.effective_time == "20250115"
        assert header.confidentiality_code == "N"
        assert header.language_code == "en-US"
        assert header.set_id == "9.9.9"
        assert header.version_number == "2"
        assert header.type_display == "Summary of episode note"
        assert header.author.display == "EHR 9000"
        assert header.custodian.name == "General Hospital"
        assert header.template_ids[0].extension == "2015-08-01"

    def test_header_of_empty_document(self):
        header = extract_header({})
        assert header.title is None
        assert header.template_ids == []

    def test_patient_demographics(self):
        patient = extract_patient(self._doc(), DEFAULT_ID_TYPES)
        assert patient.name.full == "Pat Smith"
        assert patient.gender == "F"
        assert patient.race == "White"
        assert patient.ethnicity == "Not Hispanic or Latino"
        assert patient.marital_status == "Married"
        assert patient.language == "en"

    def test_mrn_skips_typed_identifiers(self):
        patient = extract_patient(self._doc(), DEFAULT_ID_TYPES)
        assert patient.mrn == "E100"

    def test_guardian(self):
        guardian = extract_patient(self._doc()).guardians[0]
        assert guardian.relationship == "Mother"
        assert guardian.name.full == "Lee Smith"

    def test_no_patient(self):
        assert extract_patient({"title": "x"}) is None
        assert extract_patient(None) is None


class TestCarePlan:
    def test_health_concern(self, care_plan_tree):
        doc = care_plan_tree["ClinicalDocument"]
        section = doc["component"]["structuredBody"]["component"][0]["section"]
        concern = extract_health_concerns(section)[0]
        assert concern.concern == "Diabetes mellitus type 2"
        assert concern.category == "Problem"
        assert concern.status == "active"
        assert concern.identifier == "hc-1"

    def test_goal_with_progress(self):
        xml = """<entry><observation classCode="OBS" moodCode="GOL">
            <id root="goal-1"/>
            <code displayName="Body weight"/>
            <value xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xsi:type="PQ" value="80" unit="kg"/>
            <statusCode code="active"/>
            <effectiveTime><low value="20250101"/><high value="20250701"/></effectiveTime>
            <priorityCode displayName="High priority"/>
            <entryRelationship typeCode="REFR"><observation>
                <code code="ASSERTION"/>
                <value displayName="Goal not achieved"/>
            </observation></entryRelationship>
        </observation></entry>"""
        goal = extract_goals(section_tree(xml))[0]
        assert goal.goal == "Body weight"
        assert goal.priority == "High priority"
        assert goal.start == "20250101"
        assert goal.target_date == "20250701"
        assert goal.progress == "Goal not achieved"

    def test_intervention(self, care_plan_tree):
        doc = care_plan_tree["ClinicalDocument"]
        section = doc["component"]["structuredBody"]["component"][1]["section"]
        intervention = extract_interventions(section)[0]
        assert intervention.intervention == "Dietary education"
        assert intervention.planned_date == "20250201"
        assert intervention.completed_date is None

    def test_empty(self):
        assert extract_goals(None) == []
        assert extract_health_concerns(None) == []
        assert extract_interventions(None) == []


class TestProcedural:
    def test_anesthesia(self):
        xml = """<entry><procedure>
            <id root="an-1"/>
            <code code="50697003" displayName="General anesthesia"/>
            <effectiveTime><low value="202501150800"/><high value="202501151000"/></effectiveTime>
        </procedure></entry>"""
        record = extract_anesthesia(section_tree(xml))[0]
        assert record.type == "General anesthesia"
        assert record.start == "202501150800"
        assert record.end == "202501151000"

    def test_complication_severity_from_qualifier(self):
        xml = """<entry><observation>
            <code displayName="Complication"/>
            <value displayName="Wound infection">
                <qualifier><value displayName="Mild"/></qualifier>
            </value>
        </observation></entry>"""
        complication = extract_complications(section_tree(xml))[0]
        assert complication.complication == "Wound infection"
        assert complication.severity == "Mild"

    def test_complication_severity_from_relationship(self):
        xml = """<entry><observation>
            <value displayName="Bleeding"/>
            <entryRelationship><observation>
                <code code="SEV"/><value displayName="Severe"/>
            </observation></entryRelationship>
        </observation></entry>"""
        assert extract_complications(section_tree(xml))[0].severity == "Severe"

    def test_dicom_catalog_counts(self):
        xml = """<entry><act classCode="ACT" moodCode="EVN">
            <id root="1.2.840.113619.2.62"/>
            <id root="1.2.3" extension="ACC-77"/>
            <code code="113014" displayName="CT"/>
            <effectiveTime value="20250120"/>
            <entryRelationship typeCode="COMP"><act>
                <entryRelationship typeCode="COMP"><observation><id root="img-1"/></observation></entryRelationship>
                <entryRelationship typeCode="COMP"><observation><id root="img-2"/></observation></entryRelationship>
            </act></entryRelationship>
            <entryRelationship typeCode="COMP"><act>
                <entryRelationship typeCode="COMP"><observation><id root="img-3"/></observation></entryRelationship>
            </act></entryRelationship>
        </act></entry>"""
        study = extract_dicom_catalog(section_tree(xml))[0]
        assert study.study_instance_uid == "1.2.840.113619.2.62"
        assert study.accession_number == "ACC-77"
        assert study.modality == "CT"
        assert study.study_date == "20250120"
        assert study.series_count == 2
        assert study.image_count == 3


class TestNarrative:
    def test_narrative_section(self):
        node = section_tree("""
            <code code="10164-2" codeSystem="2.16.840.1.113883.6.1"/>
            <title>History of Present Illness</title>
            <text>
                <paragraph>Three days of cough.</paragraph>
                <list><item>No fever</item><item>No chills</item></list>
            </text>""")
        narrative = extract_narrative(node)
        assert narrative.title == "History of Present Illness"
        assert narrative.code == "10164-2"
        assert narrative.code_system == "2.16.840.1.113883.6.1"
        assert narrative.text == "Three days of cough. No fever No chills"
        kinds = [b.kind for b in narrative.blocks]
        assert kinds == ["list", "paragraph"]

    def test_inline_markup_keeps_word_order(self):
        node = section_tree("""
            <title>Assessment</title>
            <text><paragraph>Patient reports <content styleCode="Bold">severe</content> chest pain</paragraph></text>""")
        narrative = extract_narrative(node)
        assert narrative.text == "Patient reports severe chest pain"
        assert narrative.blocks[0].text == "Patient reports severe chest pain"

    def test_empty_list_items_skipped(self):
        blocks = narrative_blocks({"list": {"item": ["", "Only"]}})
        assert blocks[0].items == ["Only"]

    def test_absent(self):
        assert extract_narrative(None) is None
