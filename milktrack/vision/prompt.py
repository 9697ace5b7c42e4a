"""Instruction sent to the vision model with every receipt photo."""

EXTRACTION_PROMPT = """\
Analyze this dairy collection receipt (milk slip) image and extract the
values listed below as JSON.

Layout notes: the upper section of the slip usually prints four values in
this order:
1. QTY  - quantity in liters
2. FAT  - fat percentage
3. CLR  - corrected lactometer reading
4. RATE - the BASE rate, printed in PAISE (not rupees). This is NOT the rate
   that was billed.

The "Avg. Rate" printed below those four values is the rate actually billed,
in rupees. Use it for "rate", never the base RATE.

Return these fields:
{
  "date": "date in DD/MM/YYYY format",
  "quantity": "QTY in liters (number only)",
  "fat": "FAT percentage (number only)",
  "clr": "CLR value (number only)",
  "fatKg": "fat in kg, if printed (number only)",
  "snfKg": "SNF in kg, if printed (number only)",
  "baseRate": "base RATE from the upper section in paise, exactly as printed (number only, e.g. 70.50)",
  "rate": "Avg. Rate in rupees (number only)",
  "amount": "total amount in rupees (number only)"
}

Only include fields that are clearly visible on the slip; leave the others
out instead of guessing or writing 0. Return ONLY the JSON object, with no
other text.
"""
