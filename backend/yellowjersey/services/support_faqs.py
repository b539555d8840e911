from __future__ import annotations

FAQS = [
    {
        "id": "inr-1",
        "category": "item_not_received",
        "question": "How long does delivery usually take?",
        "answer": "Most domestic orders arrive within 3-7 business days. Your order details show the delivery method and any tracking number the seller has added.",
    },
    {
        "id": "inr-2",
        "category": "item_not_received",
        "question": "When should I report an item as not received?",
        "answer": "Wait at least 7 business days past the expected delivery date and message the seller first. If the parcel is confirmed lost, open a ticket and we will step in.",
    },
    {
        "id": "inad-1",
        "category": "item_not_as_described",
        "question": "What counts as not as described?",
        "answer": "The item differs materially from the listing: condition, size, colour, function or advertised components. Minor cosmetic differences may not qualify.",
    },
    {
        "id": "inad-2",
        "category": "item_not_as_described",
        "question": "What evidence helps my case?",
        "answer": "Clear photos of the problem from several angles next to the listing photos. The more detail you attach, the faster the review.",
    },
    {
        "id": "dmg-1",
        "category": "damaged",
        "question": "My bike arrived damaged. What now?",
        "answer": "Photograph the damage and the packaging straight away and keep the packaging. Contact the seller, then open a ticket if you cannot agree on a fix.",
    },
    {
        "id": "dmg-2",
        "category": "damaged",
        "question": "Can I get a partial refund for minor damage?",
        "answer": "Yes. Partial refunds for damage that does not stop you riding are agreed with the seller or decided by our support team.",
    },
    {
        "id": "wrong-1",
        "category": "wrong_item",
        "question": "I received the wrong item.",
        "answer": "Photograph what arrived and message the seller. They should send the right item or refund you once the wrong one is returned.",
    },
    {
        "id": "ref-1",
        "category": "refund_request",
        "question": "How long does a refund take?",
        "answer": "Approved refunds are processed within 3-5 business days. Your bank may take longer to show the credit.",
    },
    {
        "id": "ref-2",
        "category": "refund_request",
        "question": "What happens to my payment during a dispute?",
        "answer": "Funds stay held and are not released to the seller until the ticket is resolved.",
    },
    {
        "id": "ship-1",
        "category": "shipping_issue",
        "question": "My tracking has not updated for days.",
        "answer": "Couriers sometimes scan only at major depots. If nothing changes for 5 business days, ask the seller to lodge an enquiry with the courier.",
    },
    {
        "id": "gen-1",
        "category": "general_question",
        "question": "How does buyer protection work?",
        "answer": "Payments are held for 7 days after purchase. If something goes wrong, open a ticket within that window and the funds stay held until it is resolved.",
    },
    {
        "id": "gen-2",
        "category": "general_question",
        "question": "How do I contact a seller?",
        "answer": "Open the order from your purchases page and use the message option, or raise a ticket if you need our help.",
    },
]


def faqs_for(category: str | None = None) -> list[dict]:
    key = (category or "").strip().lower()
    if not key:
        return list(FAQS)
    return [f for f in FAQS if f["category"] == key]
