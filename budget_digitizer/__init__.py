"""Budget Document Digitizer.

Turns solar-equipment budget PDFs and images into structured line items,
reading native PDF text where it is dense enough and falling back to
Tesseract OCR on binarized page renders.
"""
