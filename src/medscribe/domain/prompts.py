"""Prompt text and recognition vocabulary for medical consultations."""

from .models import SessionInfo

MEDICAL_VOCABULARY = (
    # Specialties and conditions
    "hypertension",
    "hyperlipidemia",
    "diabetes mellitus",
    "cardiovascular",
    "endocrinology",
    "hematology",
    "neurology",
    "oncology",
    "rheumatology",
    "gastroenterology",
    "pulmonary",
    "dermatology",
    "nephrology",
    "urology",
    "orthopedics",
    # Common medications
    "metformin",
    "atorvastatin",
    "lisinopril",
    "amlodipine",
    "levothyroxine",
    "albuterol",
    "insulin",
    "hydrochlorothiazide",
    "metoprolol",
    "omeprazole",
    # Procedures and diagnostics
    "echocardiogram",
    "electrocardiogram",
    "magnetic resonance imaging",
    "computed tomography",
    "ultrasound",
    "endoscopy",
    "colonoscopy",
    "biopsy",
    "pathology",
    "laboratory",
    # Consultation vocabulary
    "chief complaint",
    "past medical history",
    "review of systems",
    "vital signs",
    "family history",
    "social history",
    "allergies",
    "medications",
    "diagnosis",
    "treatment plan",
    "follow up",
    "side effects",
    "adverse reaction",
)

SUMMARY_SECTIONS = (
    ("Chief Complaint", "Summarize the main reasons for the visit"),
    ("History of Present Illness", "Key details about the current medical issues"),
    ("Past Medical History", "Relevant medical history mentioned"),
    ("Medications", "Current medications and any changes discussed"),
    ("Physical Examination", "Findings from any examinations performed"),
    ("Assessment", "The doctor's assessment or diagnosis"),
    ("Plan", "Treatment plan, prescriptions, follow-up recommendations"),
    ("Patient Education", "Any instructions or education provided to the patient"),
)

SUMMARY_PROMPT_TEMPLATE = """You are a medical scribe assistant. Analyze this medical consultation transcript and create a detailed, structured medical summary.

Patient Name: {patient_line}
Visit Type: {visit_type}

CONSULTATION TRANSCRIPT:
{transcript}

Create a comprehensive medical summary with these sections:
{sections}

Format each section as a markdown heading ("## Section") followed by bullet points ("- item"). Maintain medical accuracy and use proper medical terminology."""


def build_summary_prompt(transcript: str, session_info: SessionInfo | None) -> str:
    """
    Builds the summarization prompt for a transcript.

    Args:
        transcript: Speaker-labelled transcript text.
        session_info: Optional session details with patient metadata.

    Returns:
        The complete prompt text.
    """
    patient = session_info.patient_info if session_info else None
    patient_line = patient.name if patient else "the patient"
    if patient and patient.id:
        patient_line = f"{patient_line} (ID: {patient.id})"
    visit_type = (patient.type if patient else None) or "consultation"

    sections = "\n".join(
        f"{index}. {title}: {description}"
        for index, (title, description) in enumerate(SUMMARY_SECTIONS, start=1)
    )
    return SUMMARY_PROMPT_TEMPLATE.format(
        patient_line=patient_line,
        visit_type=visit_type,
        transcript=transcript,
        sections=sections,
    )
