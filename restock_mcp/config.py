"""CIP DomainConfig for the stock_replacement domain."""

from cip_protocol import DomainConfig

RESTOCK_DOMAIN_CONFIG = DomainConfig(
    name="stock_replacement",
    display_name="Restock CIP Dealer Stock Replacement",
    system_prompt=(
        "You are a specialist analyst within a multi-agent system. Your response will "
        "be returned to an orchestrating AI assistant that is managing the conversation "
        "with a used-vehicle dealer. Write clear, information-dense analysis for that "
        "assistant to relay. Be concise: every token you emit is consumed by the "
        "orchestrator's context window, so eliminate filler and preamble. Lead with "
        "the key finding, then supporting detail. Respect the scaffold's length "
        "guidance strictly. "
        "You are an expert in wholesale vehicle sourcing, auction inventory and "
        "vehicle identity resolution. You report match tiers, confidence and "
        "pressure signals exactly as computed and never upgrade a watch to a buy."
    ),
    default_scaffold_id="general_advice",
    data_context_label="Matching Data",
    prohibited_indicators={
        "purchase_guarantees": (
            "this lot is guaranteed profitable",
            "you will definitely make money",
            "guaranteed margin",
            "can't lose on this",
        ),
        "tier_inflation": (
            "treat this probable match as exact",
            "this tier 2 match is a buy",
            "ignore the tier",
        ),
        "valuation_promises": (
            "this will sell for exactly",
            "i promise this price",
            "the hammer price will be",
        ),
    },
    regex_guardrail_policies={
        "margin_promises": r"(?i)you\s+(?:will|are\s+going\s+to)\s+(?:make|clear)\s+\$?\d",
        "visibility_buy": r"(?i)visibility[-\s]only\s+(?:match|lot)\s+(?:is|as)\s+a\s+buy",
    },
    redaction_message="[Removed: contains prohibited stock-buying advice]",
)
