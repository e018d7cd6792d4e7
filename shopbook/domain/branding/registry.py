"""Built-in industry templates"""

from .schemas import BookingCopy, IndustryTemplate, TemplateLabels, TemplateUI

DEFAULT_TEMPLATE_KEY = "generic"
DEFAULT_ACCENT_COLOR = "#111827"

TEMPLATES: dict[str, IndustryTemplate] = {
    "generic": IndustryTemplate(
        key="generic",
        labels=TemplateLabels(
            providerLabel="Provider",
            providersLabelPlural="Providers",
            serviceLabel="Service",
            servicesLabelPlural="Services",
            customerLabel="Client",
            customersLabelPlural="Clients",
            bookingNoun="Booking",
        ),
        bookingCopy=BookingCopy(
            heroTitle="Book an appointment",
            heroSubtitle="Choose a service and pick a time that suits you.",
            microcopy=["You'll get a link to manage your booking."],
        ),
        ui=TemplateUI(
            ctaConfirm="Confirm booking",
            scheduleTitle="Schedule",
            accentColorDefault=DEFAULT_ACCENT_COLOR,
        ),
    ),
    "barber": IndustryTemplate(
        key="barber",
        labels=TemplateLabels(
            providerLabel="Barber",
            providersLabelPlural="Barbers",
            serviceLabel="Service",
            servicesLabelPlural="Services",
            customerLabel="Customer",
            customersLabelPlural="Customers",
            bookingNoun="Booking",
        ),
        bookingCopy=BookingCopy(
            heroTitle="Book your haircut in minutes",
            heroSubtitle="Choose a service, pick your barber, select a time.",
            microcopy=[
                "No payment required.",
                "Manage your booking from the link we'll send you.",
            ],
        ),
        ui=TemplateUI(
            ctaConfirm="Confirm booking",
            scheduleTitle="Today's schedule",
            accentColorDefault=DEFAULT_ACCENT_COLOR,
        ),
    ),
    "dental": IndustryTemplate(
        key="dental",
        labels=TemplateLabels(
            providerLabel="Dentist",
            providersLabelPlural="Dentists",
            serviceLabel="Treatment",
            servicesLabelPlural="Treatments",
            customerLabel="Patient",
            customersLabelPlural="Patients",
            bookingNoun="Appointment",
        ),
        bookingCopy=BookingCopy(
            heroTitle="Book a dental appointment",
            heroSubtitle="Select a treatment and choose a time that works for you.",
            microcopy=[
                "For urgent cases, call the clinic.",
                "You'll receive a link to reschedule or cancel.",
            ],
        ),
        ui=TemplateUI(
            ctaConfirm="Book appointment",
            scheduleTitle="Today's appointments",
            accentColorDefault=DEFAULT_ACCENT_COLOR,
        ),
    ),
}
