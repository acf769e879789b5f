"""
Tool definitions offered to the reasoning service (OpenAI function-calling format).

Every tool acts on the customer of the current conversation, so none of them
takes a phone number.
"""
from typing import Any, Dict, List

from origination.database.models.enums import (
    DocumentType, EmploymentType, LoanPurpose, Stage,
)


def _function(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def get_capability_tools() -> List[Dict[str, Any]]:
    """
    Get the tool definitions for the loan assistant.

    Returns:
        List of OpenAI function tool schemas
    """
    application_id = {"type": "integer", "description": "Application id"}
    return [
        _function(
            "get_customer",
            "Look up the customer's profile, consent, documents and latest application. "
            "Use it to check what is already on file.",
            {},
            [],
        ),
        _function(
            "record_consent",
            "Record the customer's answer to the data-processing consent request. "
            "Required before collecting the tax id or any other personal data.",
            {"granted": {"type": "boolean", "description": "True if the customer agreed, false if they refused"}},
            ["granted"],
        ),
        _function(
            "update_customer",
            "Save personal data provided by the customer. All fields are validated together; "
            "nothing is saved if any field is invalid. Requires consent for everything except the name.",
            {
                "name": {"type": "string", "description": "Full name"},
                "tax_id": {"type": "string", "description": "CPF, digits only"},
                "email": {"type": "string", "description": "Email address"},
                "birth_date": {"type": "string", "description": "Birth date (YYYY-MM-DD)"},
                "monthly_income": {"type": "number", "description": "Monthly income"},
                "employer_name": {"type": "string", "description": "Employer name"},
                "employment_type": {"type": "string", "enum": [e.value for e in EmploymentType]},
            },
            [],
        ),
        _function(
            "simulate_loan",
            "Simulate a personal loan: installment, rate, total cost. Needs no personal data.",
            {
                "amount": {"type": "number", "description": "Loan amount"},
                "installments": {"type": "integer", "description": "Number of monthly installments"},
                "monthly_income": {"type": "number", "description": "Monthly income for personalised pricing (optional)"},
            },
            ["amount", "installments"],
        ),
        _function(
            "create_application",
            "Create a formal loan application once the customer confirms a simulation.",
            {
                "amount": {"type": "number", "description": "Loan amount"},
                "installments": {"type": "integer", "description": "Number of monthly installments"},
                "purpose": {"type": "string", "enum": [p.value for p in LoanPurpose]},
            },
            ["amount", "installments"],
        ),
        _function(
            "check_documents",
            "List which required documents were sent and which are still missing.",
            {},
            [],
        ),
        _function(
            "register_document",
            "Register a document sent by the customer. Media attached to the current message "
            "is used when no URL is given.",
            {
                "document_type": {"type": "string", "enum": [d.value for d in DocumentType]},
                "media_url": {"type": "string", "description": "URL of the media file"},
                "media_type": {"type": "string", "description": "MIME type of the file"},
            },
            ["document_type"],
        ),
        _function(
            "run_credit_analysis",
            "Run the credit analysis (score, fraud, payment capacity) once documents are complete.",
            {"application_id": application_id},
            ["application_id"],
        ),
        _function(
            "generate_contract",
            "Generate the loan contract for an approved application. "
            "The signing link is delivered to the customer automatically.",
            {"application_id": application_id},
            ["application_id"],
        ),
        _function(
            "get_application_status",
            "Get the status of the customer's latest application, credit decision and contract.",
            {},
            [],
        ),
        _function(
            "update_stage",
            "Move the customer forward in the origination journey, or cancel it.",
            {"stage": {"type": "string", "enum": [s.value for s in Stage]}},
            ["stage"],
        ),
    ]
