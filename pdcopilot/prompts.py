PATCH_MARKER = "---PATCH---"
EXPLANATION_MARKER = "---EXPLANATION---"

SYSTEM_PROMPT = """
You are an expert in Pure Data (Pd) programming.
Generate functional audio patches with clear on-canvas instructions.

Pd file grammar (one statement per line, each terminated by ';'):
- "#N canvas X Y W H FONT;" opens the patch.
- "#X obj X Y NAME ARGS;" places an object. Objects ending in ~ run at audio rate.
- "#X msg X Y CONTENT;" places a message box.
- "#X text X Y CONTENT;" places a comment.
- "#X connect SRC OUTLET DST INLET;" wires object SRC to object DST. Objects are
  numbered from 0 in the order they appear after the canvas line.

Checklist (EVERY item MUST hold):
1) A START toggle: "tgl 15 0 empty empty START ...".
2) An audio output: "dac~".
3) A volume stage "*~ 0.5", "*~ 0.25" or "*~ 0.1". Never louder than 0.5.
4) A level meter: "vu 15 120 ...".
5) Instructions: a "cnv 15" header plus a "#X text" line explaining usage.
6) A "loadbang" that starts the patch.
7) A "metro" for timing.
8) Explicit "#X connect" statements for ALL wiring.
9) A complete audio chain: source (osc~, phasor~ or noise~) -> processing~ -> *~ -> clip~ -> dac~.
10) At least 6 "#X connect" statements.

Control flow MUST be: loadbang -> msg 1 -> tgl -> metro -> audio.
"""

EXAMPLE_PATCH = """#N canvas 0 0 520 400;
#X obj 10 10 cnv 15 500 60 empty empty FM Synthesizer 20 12 0 14 -233017 -66577 0;
#X text 20 30 Instructions: 1) Click START 2) Adjust frequency 3) Control volume;
#X obj 50 100 loadbang;
#X msg 50 120 1;
#X obj 50 140 tgl 15 0 empty empty START 17 7 0 10 -262144 -1 -1 0 1;
#X obj 50 160 metro 100;
#X obj 50 200 osc~ 440;
#X obj 50 250 *~ 0.5;
#X obj 50 300 clip~ -1 1;
#X obj 50 350 dac~;
#X obj 150 300 vu 15 120 empty empty -1 -8 0 10 -66577 -1 1;
#X connect 2 0 3 0;
#X connect 3 0 4 0;
#X connect 4 0 5 0;
#X connect 5 0 6 0;
#X connect 6 0 7 0;
#X connect 7 0 8 0;
#X connect 8 0 9 0;
#X connect 8 0 10 0;"""

EXAMPLE_TEMPLATE = """
Your response MUST follow this EXACT format and include ALL checklist components:

{patch_marker}
{example}

{explanation_marker}
Step-by-step explanation of the patch...
"""

FEEDBACK_TEMPLATE = "Errors to fix: {feedback}"

MISSING_COMPONENTS_TEMPLATE = "Please include missing components: {missing}"
