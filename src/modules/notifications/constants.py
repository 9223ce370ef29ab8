"""Notification subjects, templates and sweep outcomes."""

PICKUP_CONFIRMATION_TEMPLATE = "order_pickup_confirmation"
DELIVERY_CONFIRMATION_TEMPLATE = "order_delivery_confirmation"
CUSTOMER_SURVEY_TEMPLATE = "customer_survey"
MMI_PRE_SURVEY_TEMPLATE = "mmi_pre_survey"

SUBJECTS = {
    PICKUP_CONFIRMATION_TEMPLATE: "Order #{ref_id} has been picked up",
    DELIVERY_CONFIRMATION_TEMPLATE: "Order #{ref_id} has been delivered",
    CUSTOMER_SURVEY_TEMPLATE: "How did we do? Order #{ref_id}",
    MMI_PRE_SURVEY_TEMPLATE: "Your vehicle delivery, order #{ref_id}",
}

# Plain-text bodies; keys missing from the context render empty
BODIES = {
    PICKUP_CONFIRMATION_TEMPLATE: (
        "Order #{ref_id} ({vehicles}) was picked up on {pickup_date}.\n"
        "From: {origin}\nTo: {destination}\n"
        "Estimated delivery: {delivery_date}\n"
    ),
    DELIVERY_CONFIRMATION_TEMPLATE: (
        "Order #{ref_id} ({vehicles}) was delivered on {delivery_date}.\n"
        "From: {origin}\nTo: {destination}\n"
    ),
    CUSTOMER_SURVEY_TEMPLATE: (
        "Hi {customer_name},\n\n"
        "Your vehicle shipment #{ref_id} was delivered on {delivery_date}. "
        "Tell us how it went: {survey_url}\n"
    ),
    MMI_PRE_SURVEY_TEMPLATE: (
        "Hi {customer_name},\n\n"
        "Your vehicle shipment #{ref_id} has been delivered. Over the next few "
        "days you will receive a short survey about your experience.\n"
    ),
}

SENDGRID_MAIL_PATH = "/v3/mail/send"
SENDGRID_TIMEOUT_SECONDS = 10
