from datetime import date, datetime
from html import escape
from typing import List, Optional, Tuple
from urllib.parse import urlencode

from carriers import carrier_name
from config import FRONTEND_BASE_URL
from schemas.search import BestOffer, FareSegment
from schemas.watches import WatchRecord


# =======================================
# SECTION: HELPER LINK BUILDERS
# =======================================

def build_watch_deeplink(watch: WatchRecord, best: BestOffer) -> str:
    """
    Builds a deep link to the search page for the exact itinerary that fired.
    autoSearch=1 makes the page run the search immediately.
    """
    base = FRONTEND_BASE_URL.rstrip("/")
    offer = best.offer

    qp = {
        "origin": watch.origin,
        "destination": watch.destination,
        "depart": best.dates.depart.isoformat(),
        "return": best.dates.returnDate.isoformat() if best.dates.returnDate else None,
        "adults": str(watch.adults),
        "children": str(watch.children),
        "infants": str(watch.infants),
        "cabin": watch.cabin.value,
        "maxStops": str(watch.maxStops),
        "price": f"{offer.total:.2f}",
        "carrier": offer.carrier,
        "watchId": watch.id,
        "autoSearch": "1",
    }
    qp = {k: v for k, v in qp.items() if v is not None}

    return f"{base}/search?{urlencode(qp)}"


# =======================================
# SECTION: FORMATTING HELPERS
# =======================================

def _stops_label(stops: Optional[int]) -> str:
    if stops is None:
        return ""
    if stops == 0:
        return "Non-stop"
    return f"{stops} stop{'s' if stops > 1 else ''}"


def _date_label(d: date) -> str:
    return d.strftime("%a %d %b %Y")


def _time_label(iso: Optional[str]) -> str:
    if not iso:
        return ""
    try:
        return datetime.fromisoformat(iso).strftime("%d %b %H:%M")
    except ValueError:
        return iso


def _segment_line(seg: FareSegment) -> str:
    parts = [seg.flightNumber or seg.carrier or ""]
    parts.append(f"{seg.origin or '?'} → {seg.destination or '?'}")
    if seg.departingAt:
        parts.append(f"{_time_label(seg.departingAt)} to {_time_label(seg.arrivingAt)}")
    return "  ".join(p for p in parts if p)


def build_subject(watch: WatchRecord, best: BestOffer) -> str:
    return (
        f"Price drop: {watch.origin} → {watch.destination} "
        f"from {best.offer.currency} {best.offer.total:.2f}"
    )


# =======================================
# SECTION: FARE DROP EMAIL
# =======================================

def render_fare_email(watch: WatchRecord, best: BestOffer, deeplink: str) -> Tuple[str, str, str]:
    """
    Fare drop email for one watch.

    Returns (subject, html, text). Every value interpolated into the HTML
    is escaped; the text part carries the same content for clients that
    do not render HTML.
    """
    offer = best.offer
    origin = watch.origin
    destination = watch.destination
    currency = offer.currency

    subject = build_subject(watch, best)

    trip_label = "Round-trip" if best.dates.returnDate else "One-way"
    airline_label = f"{carrier_name(offer.carrier)} ({offer.carrier})"
    out_stops = _stops_label(offer.stopsOut)
    back_stops = _stops_label(offer.stopsBack) if best.dates.returnDate else ""

    savings = None
    if offer.total < watch.targetUsd:
        savings = round(watch.targetUsd - offer.total, 2)

    outbound = [_segment_line(s) for s in offer.outbound_segments()]
    inbound = [_segment_line(s) for s in offer.return_segments()]

    # Plain text
    lines: List[str] = []
    lines.append("Flight price alert")
    lines.append(f"{currency} {offer.total:.2f} | {trip_label}")
    if savings is not None:
        lines.append(f"{currency} {savings:.2f} below your target")
    lines.append("")
    lines.append(f"Route: {origin} → {destination}, {watch.cabin.value.replace('_', ' ').title()} class")
    lines.append(f"Depart: {_date_label(best.dates.depart)}")
    if best.dates.returnDate:
        lines.append(f"Return: {_date_label(best.dates.returnDate)}")
    lines.append(f"Airline: {airline_label}")
    lines.append(f"Outbound: {out_stops}")
    if back_stops:
        lines.append(f"Return: {back_stops}")
    if outbound:
        lines.append("")
        lines.append("Outbound flights:")
        lines.extend(f"  {line}" for line in outbound)
    if inbound:
        lines.append("")
        lines.append("Return flights:")
        lines.extend(f"  {line}" for line in inbound)
    lines.append("")
    lines.append("View this itinerary:")
    lines.append(deeplink)
    lines.append("")
    lines.append(f"Your target price: {currency} {watch.targetUsd:.2f}")
    lines.append("Fares change often and this price may no longer be available.")
    lines.append("To stop these alerts, pause or delete the watch.")
    text = "\n".join(lines)

    # HTML
    e_origin = escape(origin)
    e_destination = escape(destination)
    e_link = escape(deeplink, quote=True)

    savings_html = ""
    if savings is not None:
        savings_html = f"""
              <div style="font-size:14px;color:#059669;font-weight:700;margin-top:8px;">
                {escape(currency)} {savings:.2f} below your target
              </div>
        """

    return_row = ""
    if best.dates.returnDate:
        return_row = f"""
                <tr>
                  <td style="padding:6px 0;color:#6b7280;font-size:13px;">Return</td>
                  <td style="padding:6px 0;color:#111827;font-size:14px;">{escape(_date_label(best.dates.returnDate))}, {escape(back_stops)}</td>
                </tr>
        """

    def _segments_block(title: str, segment_lines: List[str]) -> str:
        if not segment_lines:
            return ""
        items = "".join(
            f'<div style="font-size:13px;color:#111827;padding:2px 0;">{escape(line)}</div>'
            for line in segment_lines
        )
        return f"""
            <div style="margin-top:12px;">
              <div style="font-size:12px;color:#6b7280;text-transform:uppercase;margin-bottom:4px;">{escape(title)}</div>
              {items}
            </div>
        """

    html = f"""
    <html>
      <body style="margin:0;padding:0;background:#f6f7f9;font-family:Arial,Helvetica,sans-serif;">
        <div style="max-width:640px;margin:0 auto;padding:24px;">
          <div style="background:#ffffff;border:1px solid #e6e8ee;border-radius:14px;padding:26px;">
            <div style="font-size:14px;color:#6b7280;margin-bottom:10px;">Flight price alert</div>

            <div style="font-size:26px;line-height:1.2;color:#111827;font-weight:800;margin:0 0 6px 0;">
              {e_origin} → {e_destination}
            </div>

            <div style="background:#f9fafb;border-left:4px solid #059669;border-radius:6px;padding:16px;margin:14px 0;">
              <div style="font-size:30px;color:#059669;font-weight:800;">{escape(currency)} {offer.total:.2f}</div>
              <div style="font-size:14px;color:#6b7280;">{escape(trip_label)} flight</div>
              {savings_html}
            </div>

            <table role="presentation" width="100%" cellpadding="0" cellspacing="0">
              <tr>
                <td style="padding:6px 0;color:#6b7280;font-size:13px;width:120px;">Airline</td>
                <td style="padding:6px 0;color:#111827;font-size:14px;font-weight:700;">{escape(airline_label)}</td>
              </tr>
              <tr>
                <td style="padding:6px 0;color:#6b7280;font-size:13px;">Depart</td>
                <td style="padding:6px 0;color:#111827;font-size:14px;">{escape(_date_label(best.dates.depart))}, {escape(out_stops)}</td>
              </tr>
              {return_row}
            </table>

            {_segments_block("Outbound flights", outbound)}
            {_segments_block("Return flights", inbound)}

            <div style="margin:22px 0 0 0;">
              <a href="{e_link}"
                 style="display:inline-block;background:#2563eb;color:#ffffff;text-decoration:none;padding:12px 18px;border-radius:10px;font-weight:700;font-size:14px;">
                View this itinerary
              </a>
            </div>

            <div style="border-top:1px solid #eef0f5;margin:20px 0 12px 0;"></div>

            <div style="font-size:12px;color:#6b7280;line-height:1.6;">
              Your target price: {escape(currency)} {watch.targetUsd:.2f}<br>
              Fares change often and this price may no longer be available.<br>
              You are receiving this because you created a price watch for {e_origin} → {e_destination}.
            </div>
          </div>
        </div>
      </body>
    </html>
    """

    return subject, html, text
